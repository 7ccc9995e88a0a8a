"""Basic usage example for invoice search."""

import asyncio
import json
from pathlib import Path
from typing import List

from invoice_search import InvoiceSearchService, Invoice, SearchFilters, SearchSettings
from invoice_search.models.invoice import InvoiceModel
from invoice_search.store.memory import InMemoryInvoiceStore


def load_sample_invoices(data_file: Path) -> List[Invoice]:
    """Load sample invoices from JSON file."""
    with open(data_file) as f:
        data = json.load(f)

    return [InvoiceModel(**item).to_invoice() for item in data]


async def basic_search_demo():
    """Demonstrate basic search functionality."""
    print("Invoice Search - Basic Usage Demo")
    print("=" * 50)

    # In-memory store and local hashing embeddings: no database or API key needed
    settings = SearchSettings(embedding_backend="hashing", log_level="WARNING")

    print("\n1. Initializing search service...")
    async with InvoiceSearchService.create(settings=settings, store=InMemoryInvoiceStore()) as service:

        print("\n2. Loading sample invoices...")
        sample_data_file = Path(__file__).parent / "sample_data" / "sample_invoices.json"

        if not sample_data_file.exists():
            print("   Generating sample data...")
            from sample_data.generate_sample_data import save_sample_invoices
            save_sample_invoices(sample_data_file.parent)

        invoices = load_sample_invoices(sample_data_file)
        print(f"   Loaded {len(invoices)} invoices")

        print("\n3. Embedding invoices...")
        generated = await service.index_invoices(invoices)
        cache = service.get_cache_stats()
        print(f"   Generated {generated} embeddings")
        print(f"   Vocabulary: {cache['vendor_count']} vendors, {cache['product_count']} products")

        print("\n4. Performing searches...")

        search_examples = [
            ("invoices from Gowrav", "Misspelled vendor, corrected by sound"),
            ("shwo bills for office chairs", "Keyword typos and a product"),
            ("laptops last month", "Product with a relative date"),
            ("purchases around 5000 rupees", "Amount with a +/-10% band"),
            ("between 1000 and 2000", "Explicit amount range, no search text"),
        ]

        for query_text, description in search_examples:
            print(f"\n   Query: '{query_text}' ({description})")

            results = await service.search(query_text, SearchFilters(limit=3))

            if results:
                print(f"   Found {len(results)} results:")
                for result in results:
                    print(f"     {result.rank}. {result.invoice_number} {result.vendor_name} "
                          f"({result.invoice_date}) Rs {result.total_amount} - Score: {result.similarity_score:.3f}")
            else:
                print("   No results found")

        print("\n5. Caller filters...")
        results = await service.search_text("printer", branch_id=2, limit=5)
        print(f"   Branch 2 printer invoices: {len(results)}")

        print("\n6. Health check and statistics...")
        health = await service.health_check()
        print(f"   System status: {health['status']}")

        stats = await service.get_stats()
        print(f"   Total searches performed: {stats['engine']['total_searches']}")
        print(f"   Average search time: {stats['engine']['avg_search_time']:.3f}s")

    print("\nDemo completed successfully!")


if __name__ == "__main__":
    asyncio.run(basic_search_demo())
