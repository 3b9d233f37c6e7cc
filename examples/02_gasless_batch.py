"""Example: Relay a batch of calls gaslessly through OpenZeppelin Defender."""

from __future__ import annotations

import asyncio
import logging
import os

from dotenv import load_dotenv
from eth_account import Account

from evm_tx import (
    ClientOptions,
    OpenZeppelinGasless,
    ProviderResolver,
    Transaction,
    TransactionError,
    Transactions,
)

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOGLEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


async def main() -> None:
    """Claim twice from a contract whose ABI is resolved from its metadata."""

    private_key = os.getenv("PRIVATE_KEY")
    if not private_key:
        raise ValueError("PRIVATE_KEY not found in environment variables")
    contract_address = os.getenv("CONTRACT_ADDRESS")
    if not contract_address:
        raise ValueError("CONTRACT_ADDRESS not found in environment variables")
    relayer_url = os.getenv("RELAYER_URL")
    forwarder = os.getenv("RELAYER_FORWARDER_ADDRESS")
    if not relayer_url or not forwarder:
        raise ValueError("RELAYER_URL and RELAYER_FORWARDER_ADDRESS must be set")

    signer = Account.from_key(private_key)
    options = ClientOptions(
        api_key=os.getenv("THIRDWEB_API_KEY", ""),
        gasless=OpenZeppelinGasless(relayer_url=relayer_url, relayer_forwarder_address=forwarder),
    )
    web3 = await ProviderResolver(options).resolve(os.getenv("NETWORK", "polygon"))

    batch = Transactions()
    for quantity in (1, 2):
        batch.add(
            await Transaction.from_contract_info(
                address=contract_address,
                method="claim",
                args=[signer.address, quantity],
                web3=web3,
                signer=signer,
                options=options,
            )
        )

    try:
        results = await batch.execute_all()
    except TransactionError as exc:
        print(exc)
        return

    for result in results:
        print(f"Relayed: {result.receipt['transactionHash'].to_0x_hex()}")


if __name__ == "__main__":
    asyncio.run(main())
