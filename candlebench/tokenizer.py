"""Tokenizer driven by a ``tokenizer.json`` description (WordPiece and WordLevel models)."""

from __future__ import annotations

import json
import os
import re
import string
import unicodedata
from dataclasses import dataclass, field
from pathlib import Path

_Char = tuple[str, int]


class TokenizerError(ValueError):
    """Raised when a tokenizer file cannot be loaded or used."""


@dataclass
class Encoding:
    ids: list[int] = field(default_factory=list)
    tokens: list[str] = field(default_factory=list)
    type_ids: list[int] = field(default_factory=list)
    attention_mask: list[int] = field(default_factory=list)
    offsets: list[tuple[int, int]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.ids)


def _is_punctuation(ch: str) -> bool:
    return ch in string.punctuation or unicodedata.category(ch).startswith("P")


def _is_chinese(ch: str) -> bool:
    cp = ord(ch)
    return (
        0x4E00 <= cp <= 0x9FFF
        or 0x3400 <= cp <= 0x4DBF
        or 0x20000 <= cp <= 0x2A6DF
        or 0x2A700 <= cp <= 0x2B73F
        or 0x2B740 <= cp <= 0x2B81F
        or 0x2B820 <= cp <= 0x2CEAF
        or 0xF900 <= cp <= 0xFAFF
        or 0x2F800 <= cp <= 0x2FA1F
    )


def _is_control(ch: str) -> bool:
    if ch in "\t\n\r":
        return False
    return unicodedata.category(ch) in ("Cc", "Cf", "Cn", "Co")


def _strip_accents(chars: list[_Char]) -> list[_Char]:
    return [
        (d, idx)
        for ch, idx in chars
        for d in unicodedata.normalize("NFD", ch)
        if unicodedata.category(d) != "Mn"
    ]


def _lowercase(chars: list[_Char]) -> list[_Char]:
    return [(low, idx) for ch, idx in chars for low in ch.lower()]


def _bert_normalize(chars: list[_Char], spec: dict) -> list[_Char]:
    if spec.get("clean_text", True):
        chars = [
            (" " if ch.isspace() else ch, idx)
            for ch, idx in chars
            if ch not in ("\0", "\ufffd") and not _is_control(ch)
        ]
    if spec.get("handle_chinese_chars", True):
        spaced: list[_Char] = []
        for ch, idx in chars:
            if _is_chinese(ch):
                spaced.extend([(" ", idx), (ch, idx), (" ", idx)])
            else:
                spaced.append((ch, idx))
        chars = spaced
    lowercase = spec.get("lowercase", True)
    strip = spec.get("strip_accents")
    if strip is None:
        strip = lowercase
    if strip:
        chars = _strip_accents(chars)
    if lowercase:
        chars = _lowercase(chars)
    return chars


def _apply_normalizer(chars: list[_Char], spec: dict | None) -> list[_Char]:
    if not spec:
        return chars
    kind = spec.get("type")
    if kind == "Sequence":
        for sub in spec.get("normalizers", []):
            chars = _apply_normalizer(chars, sub)
        return chars
    if kind == "BertNormalizer":
        return _bert_normalize(chars, spec)
    if kind == "Lowercase":
        return _lowercase(chars)
    if kind == "StripAccents":
        return [(ch, idx) for ch, idx in chars if unicodedata.category(ch) != "Mn"]
    if kind in ("NFD", "NFKD", "NFC", "NFKC"):
        return [(d, idx) for ch, idx in chars for d in unicodedata.normalize(kind, ch)]
    raise TokenizerError(f"unsupported normalizer: {kind}")


def _split_bert(chars: list[_Char]) -> list[list[_Char]]:
    words: list[list[_Char]] = []
    current: list[_Char] = []
    for item in chars:
        ch = item[0]
        if ch.isspace():
            if current:
                words.append(current)
            current = []
        elif _is_punctuation(ch):
            if current:
                words.append(current)
            current = []
            words.append([item])
        else:
            current.append(item)
    if current:
        words.append(current)
    return words


def _split_regex(chars: list[_Char], pattern: str) -> list[list[_Char]]:
    text = "".join(ch for ch, _ in chars)
    return [chars[m.start():m.end()] for m in re.finditer(pattern, text)]


def _apply_pre_tokenizer(words: list[list[_Char]], spec: dict | None) -> list[list[_Char]]:
    if not spec:
        return words
    kind = spec.get("type")
    if kind == "Sequence":
        for sub in spec.get("pretokenizers", []):
            words = _apply_pre_tokenizer(words, sub)
        return words
    if kind == "BertPreTokenizer":
        return [piece for word in words for piece in _split_bert(word)]
    if kind == "Whitespace":
        return [piece for word in words for piece in _split_regex(word, r"\w+|[^\w\s]+")]
    if kind == "WhitespaceSplit":
        return [piece for word in words for piece in _split_regex(word, r"\S+")]
    raise TokenizerError(f"unsupported pre-tokenizer: {kind}")


def _parse_post_processor(spec: dict | None):
    """Return (template items, special token map) or (None, {})."""
    if not spec:
        return None, {}
    kind = spec.get("type")
    if kind in ("BertProcessing", "RobertaProcessing"):
        cls_token, cls_id = spec["cls"]
        sep_token, sep_id = spec["sep"]
        template = [("special", "cls", 0), ("seq", None, 0), ("special", "sep", 0)]
        return template, {"cls": [(cls_id, cls_token)], "sep": [(sep_id, sep_token)]}
    if kind == "TemplateProcessing":
        template = []
        for item in spec.get("single", []):
            if "SpecialToken" in item:
                sp = item["SpecialToken"]
                template.append(("special", sp["id"], sp.get("type_id", 0)))
            elif "Sequence" in item:
                template.append(("seq", None, item["Sequence"].get("type_id", 0)))
        specials = {
            key: list(zip(value["ids"], value["tokens"]))
            for key, value in spec.get("special_tokens", {}).items()
        }
        return template, specials
    raise TokenizerError(f"unsupported post-processor: {kind}")


class Tokenizer:
    """Encodes text into token ids, offsets and masks."""

    def __init__(self, spec: dict) -> None:
        model = spec.get("model") or {}
        self.model_type = model.get("type")
        if self.model_type not in ("WordPiece", "WordLevel"):
            raise TokenizerError(f"unsupported tokenizer model: {self.model_type}")
        self.vocab: dict[str, int] = dict(model.get("vocab", {}))
        self.unk_token: str = model.get("unk_token", "[UNK]")
        self.prefix: str = model.get("continuing_subword_prefix", "##")
        self.max_word_chars: int = model.get("max_input_chars_per_word", 100)
        self.normalizer = spec.get("normalizer")
        self.pre_tokenizer = spec.get("pre_tokenizer")
        self.template, self.specials = _parse_post_processor(spec.get("post_processor"))
        self.added_tokens: dict[str, int] = {
            tok["content"]: tok["id"] for tok in spec.get("added_tokens") or []
        }
        self.max_length: int | None = None
        truncation = spec.get("truncation")
        if truncation:
            self.max_length = truncation.get("max_length")
        padding = spec.get("padding") or {}
        self.pad_id: int = padding.get("pad_id", 0)
        self.pad_token: str = padding.get("pad_token", "[PAD]")
        self.pad_type_id: int = padding.get("pad_type_id", 0)
        self.padding = bool(spec.get("padding"))

    def set_truncation(self, max_length: int | None) -> None:
        if max_length is not None and max_length <= 0:
            raise TokenizerError("truncation max_length must be greater than 0")
        self.max_length = max_length

    def set_padding(self, enabled: bool) -> None:
        self.padding = enabled

    def vocab_size(self, with_added_tokens: bool = True) -> int:
        size = len(self.vocab)
        if with_added_tokens:
            size += sum(1 for content in self.added_tokens if content not in self.vocab)
        return size

    def _token_id(self, token: str) -> int:
        if token in self.vocab:
            return self.vocab[token]
        if token in self.added_tokens:
            return self.added_tokens[token]
        raise TokenizerError(f"token {token!r} is not in the vocabulary")

    def _model_tokens(self, word: list[_Char]):
        span = (word[0][1], word[-1][1] + 1)
        text = "".join(ch for ch, _ in word)
        if self.model_type == "WordLevel":
            token = text if text in self.vocab else self.unk_token
            return [(self._token_id(token), token, span)]
        if len(word) > self.max_word_chars:
            return [(self._token_id(self.unk_token), self.unk_token, span)]
        pieces = []
        start = 0
        while start < len(word):
            end = len(word)
            found = None
            while start < end:
                candidate = text[start:end]
                if start > 0:
                    candidate = self.prefix + candidate
                if candidate in self.vocab:
                    found = candidate
                    break
                end -= 1
            if found is None:
                return [(self._token_id(self.unk_token), self.unk_token, span)]
            pieces.append((self.vocab[found], found, (word[start][1], word[end - 1][1] + 1)))
            start = end
        return pieces

    def _segments(self, text: str):
        """Split ``text`` around added tokens, yielding (is_added, start, end)."""
        if not self.added_tokens:
            yield False, 0, len(text)
            return
        pattern = "|".join(re.escape(t) for t in sorted(self.added_tokens, key=len, reverse=True))
        position = 0
        for match in re.finditer(pattern, text):
            if match.start() > position:
                yield False, position, match.start()
            yield True, match.start(), match.end()
            position = match.end()
        if position < len(text):
            yield False, position, len(text)

    def _num_special(self) -> int:
        if not self.template:
            return 0
        return sum(len(self.specials.get(key, [])) for kind, key, _ in self.template if kind == "special")

    def encode(self, text: str, add_special_tokens: bool = True) -> Encoding:
        pieces = []
        for is_added, start, end in self._segments(text):
            if is_added:
                content = text[start:end]
                pieces.append((self.added_tokens[content], content, (start, end)))
                continue
            chars = [(text[i], i) for i in range(start, end)]
            chars = _apply_normalizer(chars, self.normalizer)
            for word in _apply_pre_tokenizer([chars] if chars else [], self.pre_tokenizer):
                if word:
                    pieces.extend(self._model_tokens(word))

        use_template = add_special_tokens and self.template is not None
        if self.max_length is not None:
            limit = self.max_length - (self._num_special() if use_template else 0)
            pieces = pieces[: max(limit, 0)]

        encoding = Encoding()

        def push(token_id: int, token: str, type_id: int, offset: tuple[int, int]) -> None:
            encoding.ids.append(token_id)
            encoding.tokens.append(token)
            encoding.type_ids.append(type_id)
            encoding.attention_mask.append(1)
            encoding.offsets.append(offset)

        if use_template:
            for kind, key, type_id in self.template:
                if kind == "special":
                    for token_id, token in self.specials.get(key, []):
                        push(token_id, token, type_id, (0, 0))
                else:
                    for token_id, token, offset in pieces:
                        push(token_id, token, type_id, offset)
        else:
            for token_id, token, offset in pieces:
                push(token_id, token, 0, offset)
        return encoding

    def encode_batch(self, texts: list[str], add_special_tokens: bool = True) -> list[Encoding]:
        encodings = [self.encode(text, add_special_tokens) for text in texts]
        if self.padding and encodings:
            longest = max(len(enc) for enc in encodings)
            for enc in encodings:
                missing = longest - len(enc)
                enc.ids.extend([self.pad_id] * missing)
                enc.tokens.extend([self.pad_token] * missing)
                enc.type_ids.extend([self.pad_type_id] * missing)
                enc.attention_mask.extend([0] * missing)
                enc.offsets.extend([(0, 0)] * missing)
        return encodings


def load_tokenizer(path: str | os.PathLike) -> Tokenizer:
    """Load a tokenizer from a ``tokenizer.json`` file."""
    path = Path(path)
    try:
        spec = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise TokenizerError(f"failed to load tokenizer {path}: {exc}") from exc
    if not isinstance(spec, dict):
        raise TokenizerError(f"failed to load tokenizer {path}: not a JSON object")
    return Tokenizer(spec)