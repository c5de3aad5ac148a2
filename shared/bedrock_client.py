"""Amazon Bedrock client for tool-calling LLM turns."""
import boto3
import json
import asyncio
from typing import Optional, Dict, Any, List
import structlog
from botocore.exceptions import ClientError

logger = structlog.get_logger()

class BedrockClient:
    """Amazon Bedrock client for Anthropic messages with tool use."""

    # Model IDs for Bedrock models that support tool use
    MODELS = {
        "claude-sonnet-4": "anthropic.claude-sonnet-4-20250514-v1:0",
        "claude-3-7-sonnet": "anthropic.claude-3-7-sonnet-20250219-v1:0",
        "claude-3-5-sonnet": "anthropic.claude-3-5-sonnet-20240620-v1:0",
        "claude-3-5-haiku": "anthropic.claude-3-5-haiku-20241022-v1:0",
        "claude-3-sonnet": "anthropic.claude-3-sonnet-20240229-v1:0",
        "claude-3-haiku": "anthropic.claude-3-haiku-20240307-v1:0",
    }

    ANTHROPIC_VERSION = "bedrock-2023-05-31"

    def __init__(
        self,
        region_name: str = "us-east-1",
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        model_id: str = "claude-sonnet-4"
    ):
        """Initialize Bedrock client."""
        self.region_name = region_name
        self.model_id = self.MODELS.get(model_id, model_id)  # Use provided or lookup

        # Initialize boto3 client
        client_kwargs = {"service_name": "bedrock-runtime", "region_name": region_name}
        if aws_access_key_id and aws_secret_access_key:
            client_kwargs.update({
                "aws_access_key_id": aws_access_key_id,
                "aws_secret_access_key": aws_secret_access_key
            })

        self.client = boto3.client(**client_kwargs)
        logger.info("Initialized Bedrock client", region=region_name, model=self.model_id)

    async def invoke_messages(
        self,
        messages: List[Dict[str, Any]],
        system_prompt: Optional[str] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: float = 0.2,
        max_tokens: int = 4096
    ) -> Dict[str, Any]:
        """Send one Anthropic Messages request and return the decoded response body."""
        body: Dict[str, Any] = {
            "anthropic_version": self.ANTHROPIC_VERSION,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": messages
        }
        if system_prompt:
            body["system"] = system_prompt
        if tools:
            body["tools"] = tools
            body["tool_choice"] = {"type": "auto"}

        try:
            # Run synchronous boto3 call in executor
            loop = asyncio.get_event_loop()
            response = await loop.run_in_executor(
                None,
                lambda: self.client.invoke_model(
                    modelId=self.model_id,
                    body=json.dumps(body, default=str)
                )
            )
            return json.loads(response['body'].read())
        except ClientError as e:
            logger.error("Bedrock API error", error=str(e), error_code=e.response.get('Error', {}).get('Code'))
            raise
        except Exception as e:
            logger.error("Failed to invoke Bedrock", error=str(e))
            raise
