"""Compile, deploy and call a contract.

Requires a local ``solc`` installable by py-solc-x and a funded key in
``PRIVATE_KEY``. Pass the Solidity file as ``CONTRACT_SOURCE``; the example
expects it to expose ``set(uint256)`` and ``get() returns (uint256)``.
"""

import os

from dotenv import load_dotenv

from eth_pool_client import ClientConfig, ContractAbi, EthClient

load_dotenv()


def main():
    private_key = os.getenv("PRIVATE_KEY")
    if not private_key:
        raise ValueError("PRIVATE_KEY not found in environment variables")

    source = os.getenv("CONTRACT_SOURCE", "Storage.sol")
    config = ClientConfig(
        endpoints=(os.getenv("RPC_ENDPOINT", "http://localhost:8881"),),
        private_key=private_key,
    )

    with EthClient(config) as client:
        result = client.compile(source, solc_version=os.getenv("SOLC_VERSION"))
        print(f"Compiled: {', '.join(result.names)}")

        addresses = client.deploy(result)
        for name, address in zip(result.names, addresses):
            print(f"{name} deployed at {address}")

        abi = ContractAbi(result.abis[0])
        address = addresses[0]

        # Arguments may be given as CLI-style text and are converted using the ABI
        tx_hash = client.invoke(abi, address, "set", "42")
        print(f"set(42) mined: {tx_hash[0]}")

        value = client.invoke(abi, address, "get")
        print(f"get() -> {value[0]}")


if __name__ == "__main__":
    main()
