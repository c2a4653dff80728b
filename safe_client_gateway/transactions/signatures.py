"""
Decoding of Safe signatures.

A Safe signature is a concatenation of 65 bytes static parts ``{r}{s}{v}``. The
last byte (``v``) tells the kind of signature:

- ``0``: contract signature (EIP-1271). ``r`` holds the contract address and the
  static part is followed by a 32 bytes length field and the contract payload.
- ``1``: approved hash. ``r`` holds the owner that approved the hash on chain.
- ``27`` / ``28``: EOA signature over the ``safeTxHash``.
- ``31`` / ``32``: ``eth_sign`` signature over the EIP-191 prefixed ``safeTxHash``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from eth_account.messages import defunct_hash_message
from eth_keys.exceptions import BadSignature, ValidationError
from eth_typing import ChecksumAddress
from hexbytes import HexBytes
from safe_eth.eth.constants import NULL_ADDRESS
from safe_eth.eth.utils import fast_to_checksum_address
from safe_eth.safe.signatures import get_signing_address, signature_split
from safe_eth.util.util import to_0x_hex_str

EthereumBytes = Union[bytes, str]

SIGNATURE_LENGTH = 65
DYNAMIC_PART_LENGTH_FIELD_LENGTH = 32
ETH_SIGN_V_OFFSET = 4


class SignatureDecodingError(ValueError):
    pass


class CannotRecoverSigner(Exception):
    pass


class SignatureType(Enum):
    CONTRACT_SIGNATURE = 0
    APPROVED_HASH = 1
    EOA = 2
    ETH_SIGN = 3

    @staticmethod
    def from_v(v: int) -> "SignatureType":
        if v == 0:
            return SignatureType.CONTRACT_SIGNATURE
        elif v == 1:
            return SignatureType.APPROVED_HASH
        elif v in (27, 28):
            return SignatureType.EOA
        elif v in (31, 32):
            return SignatureType.ETH_SIGN
        raise SignatureDecodingError("Unknown signature type")


@dataclass(frozen=True)
class SafeSignature:
    signature_type: SignatureType
    signature: HexBytes
    v: int
    r: int
    s: int
    contract_signature: Optional[HexBytes] = None

    def __str__(self):
        return f"SafeSignature type={self.signature_type.name} signature={to_0x_hex_str(self.signature)}"

    @property
    def is_ecdsa(self) -> bool:
        return self.signature_type in (SignatureType.EOA, SignatureType.ETH_SIGN)

    @property
    def embedded_owner(self) -> ChecksumAddress:
        """
        :return: Owner encoded in ``r`` for approved hashes and contract signatures,
            without further validation
        """
        return fast_to_checksum_address(self.r.to_bytes(32, "big")[-20:])


def _to_bytes(signatures: EthereumBytes) -> bytes:
    if isinstance(signatures, str):
        hex_signatures = signatures.removeprefix("0x")
        if len(hex_signatures) % 2:
            raise SignatureDecodingError("Invalid hex bytes length")
        try:
            return bytes.fromhex(hex_signatures)
        except ValueError as exc:
            raise SignatureDecodingError("Invalid hex bytes") from exc
    return bytes(signatures)


def split_signatures(signatures: EthereumBytes) -> list[HexBytes]:
    """
    Splits appended signatures so every one of them is valid on its own. Contract
    signatures keep their dynamic part (length field + payload) right after the
    static one.

    :param signatures: One or more signatures appended
    :return: List of individual signatures
    :raises SignatureDecodingError:
    """
    signatures = _to_bytes(signatures)
    if not signatures:
        return []
    if len(signatures) < SIGNATURE_LENGTH:
        raise SignatureDecodingError("Invalid signature length")

    result = []
    position = 0
    is_previous_contract_signature = False
    while position < len(signatures):
        remaining = signatures[position:]
        if len(remaining) < SIGNATURE_LENGTH:
            # Contract signatures encoded with `abi.encode` are padded to 32 bytes
            if (
                is_previous_contract_signature
                and len(remaining) < DYNAMIC_PART_LENGTH_FIELD_LENGTH
                and not any(remaining)
            ):
                break
            raise SignatureDecodingError("Insufficient length for static part")
        static_end = position + SIGNATURE_LENGTH
        v = signatures[static_end - 1]
        is_previous_contract_signature = v == SignatureType.CONTRACT_SIGNATURE.value
        if not is_previous_contract_signature:
            result.append(HexBytes(signatures[position:static_end]))
            position = static_end
            continue

        length_end = static_end + DYNAMIC_PART_LENGTH_FIELD_LENGTH
        if len(signatures) < length_end:
            raise SignatureDecodingError(
                "Insufficient length for dynamic part length field"
            )
        dynamic_length = int.from_bytes(signatures[static_end:length_end], "big")
        dynamic_end = length_end + dynamic_length
        if len(signatures) < dynamic_end:
            raise SignatureDecodingError("Insufficient length for dynamic part")
        result.append(HexBytes(signatures[position:dynamic_end]))
        position = dynamic_end
    return result


def parse_signature(signature: EthereumBytes) -> SafeSignature:
    """
    :param signature: A single signature, as returned by :func:`split_signatures`
    :return: Decoded signature
    :raises SignatureDecodingError:
    """
    signature = HexBytes(_to_bytes(signature))
    if len(signature) < SIGNATURE_LENGTH:
        raise SignatureDecodingError("Invalid signature length")

    v, r, s = signature_split(signature)
    signature_type = SignatureType.from_v(v)
    if signature_type == SignatureType.CONTRACT_SIGNATURE:
        contract_signature = HexBytes(
            signature[SIGNATURE_LENGTH + DYNAMIC_PART_LENGTH_FIELD_LENGTH :]
        )
        return SafeSignature(signature_type, signature, v, r, s, contract_signature)
    if len(signature) != SIGNATURE_LENGTH:
        raise SignatureDecodingError("Invalid signature length")
    return SafeSignature(signature_type, signature, v, r, s)


def parse_signatures(signatures: EthereumBytes) -> list[SafeSignature]:
    return [parse_signature(signature) for signature in split_signatures(signatures)]


def recover_signer(
    safe_signature: SafeSignature, safe_tx_hash: EthereumBytes
) -> ChecksumAddress:
    """
    :param safe_signature:
    :param safe_tx_hash: Hash the signature was created for
    :return: Address of the signer. For approved hashes and contract signatures
        the owner encoded in the signature is returned, as they cannot be
        validated offchain
    :raises CannotRecoverSigner: if an ECDSA signature is not valid for the hash
    """
    if not safe_signature.is_ecdsa:
        return safe_signature.embedded_owner

    safe_tx_hash = HexBytes(safe_tx_hash)
    if safe_signature.signature_type == SignatureType.ETH_SIGN:
        # defunct_hash_message prepends `\x19Ethereum Signed Message:\n32`
        message_hash = defunct_hash_message(primitive=safe_tx_hash)
        v = safe_signature.v - ETH_SIGN_V_OFFSET
    else:
        message_hash = safe_tx_hash
        v = safe_signature.v

    try:
        signer = get_signing_address(message_hash, v, safe_signature.r, safe_signature.s)
    except (BadSignature, ValidationError, ValueError) as exc:
        raise CannotRecoverSigner(str(exc)) from exc

    if signer == NULL_ADDRESS:
        raise CannotRecoverSigner(
            f"Cannot recover signer from {safe_signature} for hash={to_0x_hex_str(safe_tx_hash)}"
        )
    return signer
