"""Bitmap helpers and the DES/AES x ECB/CBC demo run."""

import sys
import warnings

from .main import modecrypt


def _with_friendly_interrupt(fn, *args, **kwargs):
    try:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", UserWarning)
            result = fn(*args, **kwargs)
        for item in caught:
            msg = str(item.message).strip()
            if msg:
                print(f"WARN: {msg}", file=sys.stderr)
        return result
    except KeyboardInterrupt:
        raise KeyboardInterrupt("Exiting...") from None


def make_sample_bitmap(path, width: int = 256, height: int = 128):
    return modecrypt.make_sample_bitmap(path, width, height)


def bitmap_info(path):
    return modecrypt.bitmap_info(path)


def demo(
    path,
    output_dir=None,
    *,
    header_length: int | None = None,
    workers: int | None = None,
    silent: bool = False,
):
    return _with_friendly_interrupt(
        modecrypt.demo,
        path,
        output_dir,
        header_length=header_length,
        workers=workers,
        silent=silent,
    )


__all__ = ["bitmap_info", "demo", "make_sample_bitmap"]
