"""File-oriented convenience wrappers."""

from .main import modecrypt


def output_name(path, transformation):
    return modecrypt.output_name(path, transformation)


def encrypt_path(
    path,
    transformation,
    output=None,
    *,
    header_length: int | None = None,
    key=None,
    iv: bytes | None = None,
    chunk_size: int | None = None,
    silent: bool = False,
):
    return modecrypt.encrypt_path(
        path,
        transformation,
        output,
        header_length=header_length,
        key=key,
        iv=iv,
        chunk_size=chunk_size,
        silent=silent,
    )


def decrypt_path(
    path,
    transformation,
    key,
    iv: bytes | None = None,
    output=None,
    *,
    header_length: int | None = None,
    chunk_size: int | None = None,
    silent: bool = False,
):
    return modecrypt.decrypt_path(
        path,
        transformation,
        key,
        iv,
        output,
        header_length=header_length,
        chunk_size=chunk_size,
        silent=silent,
    )


def encrypt_paths(
    paths,
    transformation,
    output_dir=None,
    *,
    header_length: int | None = None,
    workers: int | None = None,
    silent: bool = False,
):
    return modecrypt.encrypt_paths(
        paths,
        transformation,
        output_dir,
        header_length=header_length,
        workers=workers,
        silent=silent,
    )


def encrypt_to(dest, header: bytes, payload, key, transformation, iv: bytes | None = None, *,
               chunk_size: int | None = None):
    return modecrypt.encrypt_to(dest, header, payload, key, transformation, iv, chunk_size=chunk_size)


def decrypt_to(dest, header: bytes, payload, key, transformation, iv: bytes | None = None, *,
               chunk_size: int | None = None):
    return modecrypt.decrypt_to(dest, header, payload, key, transformation, iv, chunk_size=chunk_size)


__all__ = [
    "decrypt_path",
    "decrypt_to",
    "encrypt_path",
    "encrypt_paths",
    "encrypt_to",
    "output_name",
]
