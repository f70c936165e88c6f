"""Agent conversation example for the watsonx client Python SDK."""

import sys

from watsonx_client import OrchestrateClient

with OrchestrateClient() as client:
    agents = client.list_agents()
    if not agents:
        sys.exit("No agents found")
    agent = agents[0]
    print("Talking to", agent.name or agent.id)

    # Stream the first reply, then continue in the same thread
    first = client.stream_message(agent.id, "Hello! What can you do?", on_fragment=lambda f: sys.stdout.write(f.text))
    print()

    follow_up = client.send_message(agent.id, "Give me one example.", thread_id=first.thread_id)
    print(follow_up.text)

    # Optional endpoints come back empty when the instance lacks them
    print("Skills:", [skill.name for skill in client.list_skills()])
