"""
MODECRYPT - ECB/CBC block-mode engine for header-preserving file encryption

This module provides the block-mode building blocks (padding, chaining,
streaming) and the file pipeline that encrypts a bitmap's pixels while its
header stays readable.
"""

from .main import *
from .api_files import *
from .api_media import *
from .version import __version__

Mode = modecrypt.Mode
PaddingScheme = modecrypt.PaddingScheme
Transformation = modecrypt.Transformation
ChainState = modecrypt.ChainState
ModeEngine = modecrypt.ModeEngine
SecretKey = modecrypt.SecretKey
FileArtifact = modecrypt.FileArtifact
BlockCipherPrimitive = modecrypt.BlockCipherPrimitive
CryptographyBlockCipher = modecrypt.CryptographyBlockCipher

# ============================================================================
# PADDING
# ============================================================================

def pad(data: bytes, block_size: int):
    """
    PKCS#5/PKCS#7 padding.

    Args:
        data: Bytes of any length
        block_size: Cipher block size B (1..255)

    Returns:
        data followed by N bytes of value N, N = B - len(data) % B

    Note:
        - A whole extra block is appended when data is already aligned
    """
    return modecrypt.pad(data, block_size)


def unpad(data: bytes, block_size: int):
    """
    Strip and validate PKCS#5/PKCS#7 padding.

    Raises:
        PaddingError: last byte is 0 or > B, or the trailing N bytes differ
    """
    return modecrypt.unpad(data, block_size)

# ============================================================================
# KEYS
# ============================================================================

def generate_key(algorithm: str, key_size: int | None = None):
    """
    Generate a random key for DES, DESede or AES.

    Args:
        algorithm: Algorithm name (case-insensitive)
        key_size: Key length in bytes; defaults to 8 (DES), 24 (DESede), 16 (AES)

    Returns:
        SecretKey - call destroy() (or use it as a context manager) when done

    Raises:
        UnsupportedAlgorithmError: unknown algorithm name
        InvalidKeyError: key size not allowed for the algorithm
    """
    return modecrypt.generate_key(algorithm, key_size)

# ============================================================================
# STREAMS
# ============================================================================

def encrypt_stream(header: bytes, payload, key, transformation, iv: bytes | None = None, *, chunk_size: int | None = None):
    """
    Lazily encrypt a payload stream, passing the header through untouched.

    Args:
        header: Raw bytes emitted unchanged
        payload: bytes, readable binary stream or iterable of byte chunks
        key: SecretKey or raw key bytes
        transformation: Transformation or "ALG/MODE/PADDING" string
        iv: CBC IV; a random one is generated when omitted

    Returns:
        (header, iterator of ciphertext chunks, iv used or None for ECB)
    """
    return modecrypt.encrypt_stream(header, payload, key, transformation, iv, chunk_size=chunk_size)


def decrypt_stream(header: bytes, payload, key, transformation, iv: bytes | None = None, *, chunk_size: int | None = None):
    """
    Lazily decrypt a payload stream produced by encrypt_stream().

    Raises (while iterating):
        TruncatedStreamError: ciphertext length is not a multiple of the block
        PaddingError: final block padding is corrupt (wrong key or tampering)
    """
    return modecrypt.decrypt_stream(header, payload, key, transformation, iv, chunk_size=chunk_size)

# ============================================================================
# IN-MEMORY FILE PIPELINE
# ============================================================================

def encrypt_file(header: bytes, payload, transformation, *, key=None, iv: bytes | None = None,
                 chunk_size: int | None = None):
    """
    Encrypt a header + payload pair.

    Returns:
        (SecretKey, iv or None, FileArtifact with the untouched header)
    """
    return modecrypt.encrypt_file(header, payload, transformation, key=key, iv=iv, chunk_size=chunk_size)


def decrypt_file(artifact, transformation, key, iv: bytes | None = None, *, chunk_size: int | None = None):
    return modecrypt.decrypt_file(artifact, transformation, key, iv, chunk_size=chunk_size)


def split_artifact(data: bytes, header_length: int | None = None):
    return modecrypt.split_artifact(data, header_length)


def block_repetition_ratio(data: bytes, block_size: int):
    """Fraction of blocks repeating an earlier block (ECB leakage indicator)."""
    return modecrypt.block_repetition_ratio(data, block_size)
