"""
Stitch Client Python SDK - Basic Usage Example

This example demonstrates logging in, running pipelines and using the
MongoDB service helper with both clients.
"""

import asyncio
import logging

from stitch_client import (
    StitchClient,
    StitchAsyncClient,
    StitchConfig,
    StitchError,
    AuthRequiredError,
    create_storage,
)


def sync_example():
    """Synchronous client example."""
    print("=== Sync Client Example ===\n")

    # Persist the session in ~/.stitch/session.json when possible
    client = StitchClient(StitchConfig(
        app_id="example-app",
        storage=create_storage(),
        debug=True,
    ))

    try:
        if not client.is_authenticated():
            client.login("user@example.com", "password")
        print(f"Logged in as: {client.authed_id()}")

        result = client.execute_pipeline([
            {"action": "literal", "args": {"items": [{"hello": "world"}]}},
        ])
        print(f"Pipeline result: {result['result']}")

        items = client.service("mongodb", "mongodb-atlas").db("todo").collection("items")
        items.insert({"text": "write the example", "checked": False})
        print(f"Open items: {items.find({'checked': False})['result']}")
    except AuthRequiredError:
        print("Login first")
    except StitchError as e:
        print(f"Request failed ({e.kind.value}): {e.message}")
    finally:
        client.close()


async def async_example():
    """Asynchronous client example."""
    print("\n=== Async Client Example ===\n")

    async with StitchAsyncClient(StitchConfig(app_id="example-app")) as client:
        try:
            await client.login()
            print(f"Anonymous user: {client.authed_id()}")

            result = await client.execute_pipeline([
                {"action": "literal", "args": {"items": [1, 2, 3]}},
            ])
            print(f"Pipeline result: {result['result']}")

            await client.logout()
        except StitchError as e:
            print(f"Request failed ({e.kind.value}): {e.message}")


def oauth_example():
    """Build an OAuth login URL and apply the redirect."""
    print("\n=== OAuth Example ===\n")

    client = StitchClient(StitchConfig(app_id="example-app"))
    url = client.get_oauth_login_url("google", "https://example.com/callback")
    print(f"Send the user to: {url}")

    # The browser comes back to https://example.com/callback#_stitch_state=...&_stitch_ua=...
    result = client.handle_redirect("#_stitch_error=access_denied")
    print(f"Redirect found={result.found} error={client.auth_error()}")
    client.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    sync_example()
    asyncio.run(async_example())
    oauth_example()
