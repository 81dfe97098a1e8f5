"""Inspect how a tokenizer encodes a piece of text."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path

from tabulate import tabulate

from .tokenizer import load_tokenizer


@dataclass
class TokenRow:
    index: int
    id: int
    token: str
    type_id: int
    attention_mask: int
    offset: tuple[int, int]


@dataclass
class TokenizeSummary:
    tokenizer: str
    text: str
    token_count: int
    vocab_size: int
    tokens: list[TokenRow] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def tokenize(path: str | os.PathLike, text: str) -> TokenizeSummary:
    path = Path(path)
    tokenizer = load_tokenizer(path)
    enc = tokenizer.encode(text, True)
    rows = [
        TokenRow(index, token_id, token, type_id, mask, offset)
        for index, (token_id, token, type_id, mask, offset) in enumerate(
            zip(enc.ids, enc.tokens, enc.type_ids, enc.attention_mask, enc.offsets)
        )
    ]
    return TokenizeSummary(str(path), text, len(rows), tokenizer.vocab_size(True), rows)


def _print_human_summary(summary: TokenizeSummary) -> None:
    print("Tokenizer")
    print("=========")
    print(f"file: {summary.tokenizer}")
    print(f"vocab size: {summary.vocab_size}")
    print(f"tokens: {summary.token_count}")
    print()
    table = [
        [r.index, r.id, r.token, r.type_id, r.attention_mask, f"{r.offset[0]}..{r.offset[1]}"]
        for r in summary.tokens
    ]
    print(tabulate(table, headers=["#", "id", "token", "type", "mask", "offset"], tablefmt="fancy_grid"))


def run(path: str | os.PathLike, text: str, json_output: bool) -> None:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"tokenizer file does not exist: {path}")
    summary = tokenize(path, text)
    if json_output:
        print(json.dumps(summary.to_dict(), indent=2))
    else:
        _print_human_summary(summary)