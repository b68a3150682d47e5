import asyncio
import json
import sys

from dotenv import load_dotenv
load_dotenv()

from opendata_search.config import settings
from opendata_search.core.errors import RetrievalError
from opendata_search.retrieval.engine import RetrievalEngine
from opendata_search.retrieval.models import Query


async def main():
    print("Initializing engine...")
    engine = RetrievalEngine.from_settings(settings)

    # 1. Fetch the catalog and embed every item
    print(f"Fetching up to {settings.open_data_rows} datasets from {settings.open_data_base_url}...")
    try:
        await engine.initialize()
    except RetrievalError as e:
        print(f"Index build failed: {type(e).__name__}: {e}")
        return 1

    build = engine.indexer.last_build
    print(
        f"Indexed {build.get('items', 0)} items "
        f"({build.get('embedded', 0)} embedded, {build.get('failed', 0)} without embedding) "
        f"in {build.get('elapsed_seconds', 0.0):.2f}s"
    )

    # 2. Optional smoke query
    if len(sys.argv) > 1:
        text = " ".join(sys.argv[1:])
        result = await engine.search(Query(text=text, limit=5))
        print(f"\nQuery: {text}")
        print(f"Method: {result.search_method.value}  confidence={result.confidence}")
        for i, item in enumerate(result.items, start=1):
            print(f"  {i}. [{item.category}] {item.title}")

    print("\nStats:")
    print(json.dumps(engine.get_stats(), ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
