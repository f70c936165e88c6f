"""Model identifiers and service defaults."""

GRANITE_4_H_SMALL = "ibm/granite-4-h-small"
GRANITE_3_3_8B_INSTRUCT = "ibm/granite-3-3-8b-instruct"
GRANITE_3_2_8B_INSTRUCT = "ibm/granite-3-2-8b-instruct"
GRANITE_3_2B_INSTRUCT = "ibm/granite-3-2b-instruct"
GRANITE_3_8B_INSTRUCT = "ibm/granite-3-8b-instruct"
GRANITE_8B_CODE_INSTRUCT = "ibm/granite-8b-code-instruct"
GRANITE_GUARDIAN_3_8B = "ibm/granite-guardian-3-8b"
LLAMA_3_3_70B_INSTRUCT = "meta-llama/llama-3-3-70b-instruct"
LLAMA_3_405B_INSTRUCT = "meta-llama/llama-3-405b-instruct"
LLAMA_4_MAVERICK_17B_128E_INSTRUCT_FP8 = "meta-llama/llama-4-maverick-17b-128e-instruct-fp8"
MISTRAL_MEDIUM_2505 = "mistralai/mistral-medium-2505"
MISTRAL_SMALL_3_1_24B_INSTRUCT_2503 = "mistralai/mistral-small-3-1-24b-instruct-2503"
GPT_OSS_120B = "openai/gpt-oss-120b"

DEFAULT_MODEL = GRANITE_4_H_SMALL

# 128k tokens
MAX_TOKENS_LIMIT = 131_072
DEFAULT_MAX_TOKENS = 8192
QUICK_RESPONSE_MAX_TOKENS = 2048

DEFAULT_TIMEOUT_SECS = 120.0
LONG_FORM_TIMEOUT_SECS = 300.0
QUICK_RESPONSE_TIMEOUT_SECS = 30.0

DEFAULT_API_VERSION = "2023-05-29"
DEFAULT_IAM_URL = "iam.cloud.ibm.com"
DEFAULT_API_URL = "https://us-south.ml.cloud.ibm.com"

DEFAULT_ORCHESTRATE_REGION = "us-south"
DEFAULT_ORCHESTRATE_TIMEOUT = 300.0
