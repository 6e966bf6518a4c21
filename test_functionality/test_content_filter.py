"""
Test Content Filter

Instructions:
- This script runs the configured content filter (FILTER_STRATEGY) on a few posts.
- "zero_shot" downloads and loads ZERO_SHOT_MODEL on first run (large, be patient).
- "reference" needs Redis running; the example posts are embedded on first use.
- You can modify the 'posts' list to test different texts.
- Prints each post and whether it would be kept.
"""
import sys
import os
import asyncio

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from infrastructure.config import Settings
from factory import ServiceFactory
from domain.entities import StreamEvent

async def main():
    settings = Settings.from_env()
    factory = ServiceFactory(settings)
    await factory.initialize()
    classifier = factory.create_content_classifier()
    await classifier.prepare()
    posts = [
        "Fine-tuning Llama 3 on our support tickets worked surprisingly well",
        "Best ramen in Lisbon? Asking for a friend",
        "Are AI agents actually useful yet or just demos?",
    ]
    results = await classifier.is_related([StreamEvent(text=p) for p in posts])
    for event, related in results:
        print(f"{'KEEP' if related else 'drop'}  {event.text}")
    await factory.close()

if __name__ == "__main__":
    asyncio.run(main())
