"""Example of a workflow that waits an hour and then sends a mail.

The workflow is stored in ``mail.db``. Stop the script at any point and run
it again: the same workflow resumes, and the mail is still sent only once.

    python guides/send_mail_example.py
"""

import asyncio
import logging
from datetime import timedelta
from typing import Optional

from tempora import ServiceProvider, Workflow, WorkflowEngine, activity, get_repository


class Mailer:
    async def send(self, sender: str, to: str, message: str) -> None:
        print(f"{sender} -> {to}: {message}")


class WelcomeWorkflow(Workflow[str, str]):
    async def run(self) -> str:
        await self.delay(timedelta(hours=1))
        await self.send_mail("team@example.com", self.input, "Welcome aboard")
        return "sent"

    @activity(inject=[Mailer])
    async def send_mail(
        self, sender: str, to: str, message: str, mailer: Optional[Mailer] = None
    ) -> None:
        await mailer.send(sender, to, message)


async def main():
    logging.basicConfig(level=logging.INFO)
    services = ServiceProvider()
    services.add(Mailer, Mailer())
    engine = WorkflowEngine(get_repository("sqlite://mail.db"), services=services)

    # The same id is only queued once, however often this script runs
    workflow_id = await engine.queue(WelcomeWorkflow, "new.user@example.com", id="welcome-new-user")
    print(f"Workflow queued: {workflow_id}")

    await engine.start()


if __name__ == "__main__":
    asyncio.run(main())
