"""Example of a parent workflow fanning out to child workflows.

Everything runs in one process against the in-memory store.
"""

import asyncio
from typing import List

from tempora import Workflow, WorkflowEngine, activity
from tempora.persistence import InMemoryWorkflowRepository


class ResizeImageWorkflow(Workflow[str, str]):
    async def run(self) -> str:
        return await self.resize(self.input)

    @activity
    async def resize(self, path: str) -> str:
        return path.replace(".png", "-small.png")


class AlbumWorkflow(Workflow[List[str], List[str]]):
    async def run(self) -> List[str]:
        results = []
        for path in self.input:
            # each child runs once; replays read its stored output
            results.append(await self.run_child(ResizeImageWorkflow, path))
        return results


async def main():
    engine = WorkflowEngine(InMemoryWorkflowRepository())
    # child types must be known before the engine starts serving
    engine.register(ResizeImageWorkflow)
    workflow_id = await engine.queue(AlbumWorkflow, ["a.png", "b.png"])

    stop = asyncio.Event()
    serving = asyncio.ensure_future(engine.start(stop))
    while True:
        result = await engine.get(workflow_id)
        if result.state.value != "pending":
            break
        await asyncio.sleep(0.1)
    stop.set()
    await serving

    print(f"{result.state.value}: {result.output}")


if __name__ == "__main__":
    asyncio.run(main())
