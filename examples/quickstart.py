"""Quick start example for the watsonx client Python SDK."""

from watsonx_client import GenerationConfig, WatsonxClient

client = WatsonxClient()
client.connect()

# Generate text
result = client.generate_text("Explain the difference between a list and a tuple in Python.")
print("Output:", result.text)
print("Quality:", client.assess_quality(result.text))

# Short answer with a tighter budget
quick = client.generate_text("Name three primary colors.", GenerationConfig.quick_response())
print("Quick:", quick.text)

# List available models
for model in client.list_models():
    print(model.model_id, "-", model.name)
