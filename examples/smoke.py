import asyncio
import logging

from llm_gateway import ChatRequest, Gateway, GatewaySettings, Message, ModelRequirements, build_manager
from llm_gateway.types import ContentEvent, DoneEvent, ErrorEvent, ThinkingEvent


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    settings = GatewaySettings()

    async with Gateway(build_manager(settings)) as gateway:
        model = gateway.select_model(ModelRequirements(task="text", speed="fast"))
        req = ChatRequest(model=model, messages=[Message(role="user", content="Say hello in five words.")])

        # Chutes does not take images or structured output; the check happens before any request is sent
        try:
            await gateway.stream_chat(req.model_copy(update={"provider": "chutes", "response_format": "json"}))
        except Exception as e:
            print("Expected error:", type(e).__name__, e)

        if not await gateway.test_provider():
            print("Default provider is not reachable, check OLLAMA_API_KEY")
            return

        async for event in await gateway.stream_chat(req):
            if isinstance(event, ThinkingEvent):
                print("[thinking]", event.delta)
            elif isinstance(event, ContentEvent):
                print(event.delta, end="", flush=True)
            elif isinstance(event, DoneEvent):
                print("\nusage:", event.usage)
            elif isinstance(event, ErrorEvent):
                print("\nerror:", event.kind, event.message)


if __name__ == "__main__":
    asyncio.run(main())
