"""
Test Topic Extraction

Instructions:
- This script asks the configured LLM (LLM_PROVIDER) for the AI topics of a post.
- Needs Redis running: the existing topics are read from the global topic set.
- You can modify the 'post' string to test other posts (e.g. a non-AI post should give []).
- Prints the extracted topics. Only the topic set is read; no indexes, groups
  or filters are created and nothing is written to Redis.
"""
import sys
import os
import asyncio

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from infrastructure.config import Settings
from factory import ServiceFactory

async def main():
    settings = Settings.from_env()
    factory = ServiceFactory(settings)
    extractor = factory.topic_extractor()
    existing = await factory.create_topic_registry().members()
    post = "Trying to run Mistral locally with Ollama. Inference seems fast!"  # Modify this string to test other posts
    topics = await extractor.extract(post, existing)
    print("Existing topics:", len(existing))
    print("Extracted topics:", topics)
    await factory.close()

if __name__ == "__main__":
    asyncio.run(main())
