"""Example: Estimate, simulate and send an ERC-20 transfer."""

from __future__ import annotations

import asyncio
import logging
import os
from decimal import Decimal

from dotenv import load_dotenv
from eth_account import Account
from web3 import Web3

from evm_tx import ClientOptions, GasSettings, ProviderResolver, Transaction, TransactionError

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOGLEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

ERC20_TRANSFER_ABI = [
    {
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    }
]

AMOUNT = 1_000_000  # 1 USDC


async def main() -> None:
    """Transfer a small token amount, printing the estimated cost first."""

    private_key = os.getenv("PRIVATE_KEY")
    if not private_key:
        raise ValueError("PRIVATE_KEY not found in environment variables")
    token_address = os.getenv("TOKEN_ADDRESS")
    if not token_address:
        raise ValueError("TOKEN_ADDRESS not found in environment variables")

    signer = Account.from_key(private_key)
    recipient = os.getenv("RECIPIENT", signer.address)

    options = ClientOptions(
        api_key=os.getenv("THIRDWEB_API_KEY", ""),
        alchemy_api_key=os.getenv("ALCHEMY_API_KEY"),
        gas_settings=GasSettings(max_price_in_gwei=Decimal(os.getenv("MAX_GAS_GWEI", "300"))),
    )
    resolver = ProviderResolver(options)
    web3 = await resolver.resolve(os.getenv("NETWORK", "mumbai"))

    contract = web3.eth.contract(
        address=Web3.to_checksum_address(token_address), abi=ERC20_TRANSFER_ABI
    )
    tx = Transaction.from_contract(
        contract, "transfer", [recipient, AMOUNT], signer=signer, options=options
    )

    try:
        await tx.simulate()
        cost = await tx.estimate_gas_cost()
        print(f"Estimated cost: {cost.ether} native ({cost.wei} wei)")

        result = await tx.execute()
        print(f"Mined in block {result.receipt['blockNumber']}")
    except TransactionError as exc:
        print(exc)


if __name__ == "__main__":
    asyncio.run(main())
