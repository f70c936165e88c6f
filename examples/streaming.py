"""Streaming example for the watsonx client Python SDK."""

import sys

from watsonx_client import WatsonxClient

client = WatsonxClient()
client.connect()

# Print text as it arrives
outcome = client.generate_text_stream(
    "Write a haiku about distributed systems.",
    on_fragment=lambda fragment: sys.stdout.write(fragment.text),
)
print()
if not outcome.completed:
    print("[stream ended early]", file=sys.stderr)
