"""Basic usage example for the pooled Ethereum client.

This example demonstrates:
- Building a client over several interchangeable endpoints
- Plain chain queries through the pool
- A value transfer that waits for its receipt
"""

import logging
import os

from dotenv import load_dotenv

from eth_pool_client import ClientConfig, EthClient, TransactionFailedError

load_dotenv()


def example_queries(client: EthClient) -> None:
    """Query chain state through the pooled connections."""

    print(f"Chain id: {client.chain_id()}")
    print(f"Gas price: {client.gas_price()} wei")

    block = client.get_block_by_number()
    print(f"Latest block: {int(block['number'], 16)}")

    if client.address:
        print(f"Balance of {client.address}: {client.get_balance(client.address)} wei")


def example_transfer(client: EthClient) -> None:
    """Send 1 gwei to the configured recipient."""

    recipient = os.getenv("RECIPIENT_ADDRESS")
    if not recipient:
        print("RECIPIENT_ADDRESS not set, skipping transfer")
        return

    try:
        receipt = client.transfer(recipient, 10**9)
    except TransactionFailedError as exc:
        print(f"Transfer failed: {exc.message}")
        return
    print(f"Transfer mined in block {int(receipt['blockNumber'], 16)}")


def main():
    logging.basicConfig(level=logging.INFO)

    endpoints = os.getenv("RPC_ENDPOINTS", "http://localhost:8881,http://localhost:8882")
    config = ClientConfig(
        endpoints=tuple(url.strip() for url in endpoints.split(",") if url.strip()),
        pool_size=4,
        private_key=os.getenv("PRIVATE_KEY"),
    )

    with EthClient(config) as client:
        example_queries(client)
        example_transfer(client)


if __name__ == "__main__":
    main()
