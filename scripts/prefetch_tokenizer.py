"""Скачать и закешировать кодировку tiktoken для offline-режима."""
from __future__ import annotations

import argparse
import os
from pathlib import Path

DEFAULT_ENCODINGS = ("cl100k_base",)


def prefetch_encoding(encoding_name: str, cache_dir: Path) -> int:
    # tiktoken читает каталог кеша из переменной окружения при каждом вызове.
    os.environ["TIKTOKEN_CACHE_DIR"] = str(cache_dir)
    import tiktoken  # noqa: PLC0415

    encoding = tiktoken.get_encoding(encoding_name)
    return encoding.n_vocab


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--cache-dir",
        default="models/tiktoken",
        help="Каталог кеша кодировок (по умолчанию: models/tiktoken). Передайте его в TIKTOKEN_CACHE_DIR.",
    )
    parser.add_argument(
        "--encoding",
        action="append",
        dest="encodings",
        help="Имя кодировки tiktoken. Можно передавать несколько раз.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    cache_dir = Path(args.cache_dir).expanduser()
    cache_dir.mkdir(parents=True, exist_ok=True)
    encodings = tuple(args.encodings or DEFAULT_ENCODINGS)

    print(f"Сохраняем кодировки в: {cache_dir}")
    for name in encodings:
        vocab = prefetch_encoding(name, cache_dir)
        print(f"tiktoken: {name} ({vocab} токенов)")


if __name__ == "__main__":
    main()
