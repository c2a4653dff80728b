from eth_abi import encode as encode_abi
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes
from safe_eth.safe.signatures import signature_to_bytes
from safe_eth.util.util import to_0x_hex_str

from ..entities import BaseMultisigTransaction, Confirmation, Safe
from ..hashing import get_safe_tx_hash
from ..signatures import SignatureType

CHAIN_ID = "1"


def sign_hash(
    account: LocalAccount,
    hash_to_sign: bytes | str,
    signature_type: SignatureType = SignatureType.EOA,
) -> str:
    """
    :return: Signature of ``account`` for ``hash_to_sign`` with the provided type
    """
    hash_to_sign = HexBytes(hash_to_sign)
    owner_as_int = int.from_bytes(HexBytes(account.address), byteorder="big")
    if signature_type == SignatureType.EOA:
        signature = account.unsafe_sign_hash(hash_to_sign)["signature"]
    elif signature_type == SignatureType.ETH_SIGN:
        signed_message = account.sign_message(encode_defunct(primitive=hash_to_sign))
        signature = signature_to_bytes(
            signed_message.v + 4, signed_message.r, signed_message.s
        )
    elif signature_type == SignatureType.APPROVED_HASH:
        signature = signature_to_bytes(1, owner_as_int, 0)
    else:
        # Build EIP1271 signature v=0 r=owner s=dynamic_part dynamic_part=size+data
        signature = (
            signature_to_bytes(0, owner_as_int, 65)
            + encode_abi(["uint256"], [65])
            + account.unsafe_sign_hash(hash_to_sign)["signature"]
        )
    return to_0x_hex_str(signature)


def set_safe_tx_hash(
    safe: Safe, transaction: BaseMultisigTransaction, chain_id: str = CHAIN_ID
) -> str:
    transaction.safe_tx_hash = to_0x_hex_str(
        get_safe_tx_hash(chain_id, safe, transaction)
    )
    return transaction.safe_tx_hash


def build_confirmation(
    account: LocalAccount,
    safe_tx_hash: str,
    signature_type: SignatureType = SignatureType.EOA,
) -> Confirmation:
    return Confirmation(
        owner=account.address,
        signature=sign_hash(account, safe_tx_hash, signature_type),
        signature_type=signature_type.name,
    )
