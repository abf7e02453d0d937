"""Example 01: Basic Usage - Keys, Properties and Batch Operations.

This example demonstrates the fundamental operations:
- Creating a client from DatastoreConfig
- Binding a request scope with EnvironmentInfo
- Building keys with Key.make() and property maps with property_map()
- put_multi / get_multi / delete_multi with per-item callbacks

Run it against the Datastore emulator:

    gcloud beta emulators datastore start --project=demo-project
    export DATASTORE_EMULATOR_HOST=localhost:8081
"""

from dsbridge import (
    CloudDatastore,
    DatastoreConfig,
    EnvironmentInfo,
    Key,
    NoSuchEntityError,
    create_client,
    property_map,
)

APP_ID = "demo-project"


def main():
    """Run the basic usage example."""
    print("=" * 80)
    print("DSBRIDGE BASIC USAGE EXAMPLE")
    print("=" * 80)

    # Step 1: Connect
    # One CloudDatastore per client; bind it once per request.
    config = DatastoreConfig(project=APP_ID)
    cloud = CloudDatastore(create_client(config), config)
    ds = cloud.bind(EnvironmentInfo(app_id=APP_ID, namespace="examples"))
    print(f"\n✓ Bound {ds!r}")

    # Step 2: Write entities
    # Incomplete keys get an id assigned by the backend.
    print("\nWriting people...")
    keys = [
        Key.make(APP_ID, "examples", "Person", "alice"),
        Key.make(APP_ID, "examples", "Person"),
    ]
    values = [
        property_map({"name": "Alice Smith", "age": 32, "tags": ["admin", "ops"]}),
        property_map({"name": "Bob Jones", "age": 28, "bio": "x" * 2000}, no_index=["bio"]),
    ]
    stored: list[Key] = []

    def on_put(key, err):
        if err is not None:
            raise err
        stored.append(key)
        print(f"  ✓ {key}")

    ds.put_multi(keys, values, on_put)

    # Step 3: Read them back, plus one key that does not exist
    print("\nReading people...")
    missing = Key.make(APP_ID, "examples", "Person", "nobody")

    def on_get(pmap, err):
        if isinstance(err, NoSuchEntityError):
            print("  - not found")
        elif err is not None:
            raise err
        else:
            print(f"  ✓ {pmap['name'][0].value} ({pmap['age'][0].value})")

    ds.get_multi([*stored, missing], on_get)

    # Step 4: Clean up
    ds.delete_multi(stored, lambda err: None)
    print(f"\n✓ Deleted {len(stored)} entities")


if __name__ == "__main__":
    main()
