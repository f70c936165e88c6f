"""Async batch example for the watsonx client Python SDK."""

import asyncio

from watsonx_client import AsyncWatsonxClient, BatchUnit, GenerationConfig


async def main() -> None:
    async with AsyncWatsonxClient() as client:
        await client.connect()

        units = [
            BatchUnit(prompt="Summarize the plot of Hamlet in one sentence.", id="hamlet"),
            BatchUnit(prompt="Summarize the plot of Macbeth in one sentence.", id="macbeth"),
            BatchUnit(
                prompt="Write a long essay about King Lear.",
                id="lear",
                config=GenerationConfig.long_form(),
            ),
        ]
        report = await client.generate_batch(units, concurrency_limit=2, timeout=600)

        print(f"{report.success_count}/{report.total} succeeded in {report.duration:.1f}s")
        for item in report.results:
            if item.ok:
                print(f"[{item.id}] {item.result.text}")
            else:
                print(f"[{item.id}] {item.error_kind}: {item.error}")


asyncio.run(main())
