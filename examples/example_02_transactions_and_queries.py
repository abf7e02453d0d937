"""Example 02: Transactions, Queries and Cursors.

This example demonstrates:
- run_in_transaction() with automatic retry on contention
- Building queries with the fluent Query builder
- Stopping a query early and resuming from a cursor
- count() over a finalized query

Requires the Datastore emulator (see example_01_basic_usage.py).
"""

from dsbridge import (
    CloudDatastore,
    DatastoreConfig,
    Key,
    Query,
    RunControl,
    TransactionOptions,
    create_client,
    property_map,
)

APP_ID = "demo-project"


def main():
    """Run the transactions and queries example."""
    config = DatastoreConfig(project=APP_ID, namespace="examples", transaction_attempts=5)
    ds = CloudDatastore(create_client(config), config).bind()

    shop = Key.make(APP_ID, "examples", "Shop", "main")

    # Section 1: Transactional writes under one entity group
    print("\n" + "=" * 80)
    print("TRANSACTIONS")
    print("=" * 80)

    def stock_items(tx):
        keys = [Key.make(APP_ID, "examples", "Shop", "main", "Item") for _ in range(6)]
        values = [property_map({"price": 5 * i, "color": "red"}) for i in range(6)]
        tx.put_multi(keys, values, lambda key, err: print(f"  ✓ {key}"))

    ds.run_in_transaction(stock_items, TransactionOptions(attempts=2))

    # Section 2: Query with an inequality filter and matching order
    print("\n" + "=" * 80)
    print("QUERIES")
    print("=" * 80)
    query = Query("Item").ancestor(shop).eq("color", "red").gte("price", 10).order("price")
    print(f"\nMatching items: {ds.count(query.finalize())}")

    # Section 3: Page through results two at a time
    cursor = None
    page = 1
    while True:
        if cursor is not None:
            query.start(cursor)
        q = query.finalize()
        seen = []

        def on_result(key, pmap, cursor_fn):
            nonlocal cursor
            seen.append(pmap["price"][0].value)
            if len(seen) == 2:
                cursor = cursor_fn()
                return RunControl.STOP
            return RunControl.CONTINUE

        ds.run(q, on_result)
        print(f"  page {page}: {seen}")
        if len(seen) < 2:
            break
        page += 1


if __name__ == "__main__":
    main()
