"""Sentence embeddings, pairwise similarity and embedding throughput benchmarks."""

from __future__ import annotations

import json
import os
import time
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path

import numpy as np

from .backend import Backend, Device, device_for_backend, device_label
from .bert import BertModel, load_config, load_safetensors_arrays, mean_pool
from .hub import HubClient, HubError, HubRepoType
from .tokenizer import Tokenizer, load_tokenizer

_DEFAULT_BENCH_TEXT = "Candlebench embedding benchmark sentence."
_F32_EPSILON = float(np.finfo(np.float32).eps)


class EmbeddingError(ValueError):
    """Raised when embedding inference or its inputs are invalid."""


@dataclass
class EmbeddingRow:
    text: str
    token_count: int
    dimensions: int
    embedding: list[float]


@dataclass
class EmbeddingSummary:
    repo: str
    revision: str | None
    config_path: Path
    tokenizer_path: Path
    weights_path: Path
    device: str
    normalized: bool
    embeddings: list[EmbeddingRow] = field(default_factory=list)


@dataclass
class SimilarityPair:
    left_index: int
    right_index: int
    left_text: str
    right_text: str
    cosine_similarity: float


@dataclass
class SimilaritySummary:
    repo: str
    revision: str | None
    device: str
    normalized: bool
    dimensions: int
    pairs: list[SimilarityPair] = field(default_factory=list)


@dataclass
class EmbeddingBenchmarkSummary:
    repo: str
    revision: str | None
    device: str
    normalized: bool
    batch_size: int
    dimensions: int
    warmup_iters: int
    timed_iters: int
    tokens_per_iter: int
    total_tokens: int
    total_embeddings: int
    total_elapsed_ms: float
    avg_iter_ms: float
    embeddings_per_sec: float
    tokens_per_sec: float


@dataclass
class EmbedOptions:
    repo: str = "all-MiniLM-L6-v2"
    revision: str | None = None
    config_file: str = "config.json"
    tokenizer_file: str = "tokenizer.json"
    weights_file: str = "model.safetensors"
    cache_dir: str | os.PathLike | None = None
    texts: list[str] = field(default_factory=list)
    normalize: bool = True
    max_length: int = 512
    backend: Backend = Backend.CPU
    json_output: bool = False
    no_progress: bool = False


@dataclass
class EmbeddingBatch:
    rows: list[EmbeddingRow]
    total_tokens: int
    dimensions: int


class EmbeddingRunner:
    """A loaded BERT-style model with its tokenizer, ready to embed texts."""

    def __init__(self, options: EmbedOptions) -> None:
        if not options.texts:
            raise EmbeddingError("at least one --text value must be provided")
        if options.max_length <= 0:
            raise EmbeddingError("--max-length must be greater than 0")

        self.repo = normalize_sentence_transformers_repo(options.repo)
        self.config_path, self.tokenizer_path, self.weights_path = resolve_model_files(
            self.repo,
            options.revision,
            options.config_file,
            options.tokenizer_file,
            options.weights_file,
            options.cache_dir,
            options.no_progress,
        )
        self.revision = options.revision
        self.device: Device = device_for_backend(options.backend)
        config = load_config(self.config_path)
        self.tokenizer: Tokenizer = load_tokenizer(self.tokenizer_path)
        self.tokenizer.set_truncation(options.max_length)
        self.tokenizer.set_padding(True)
        weights = load_safetensors_arrays(self.weights_path)
        try:
            self.model = BertModel(weights, config)
        except ValueError as exc:
            raise EmbeddingError(f"failed to load BERT model: {exc}") from exc
        self.normalize = options.normalize

    def embed_texts(self, texts: list[str]) -> EmbeddingBatch:
        """Tokenize, run the model and mean-pool one batch of texts."""
        texts = list(texts)
        if not texts:
            raise EmbeddingError("at least one text value must be provided")
        try:
            encodings = self.tokenizer.encode_batch(texts, True)
        except ValueError as exc:
            raise EmbeddingError(f"failed to tokenize texts: {exc}") from exc

        input_ids = np.array([enc.ids for enc in encodings], dtype=np.int64)
        token_type_ids = np.array([enc.type_ids for enc in encodings], dtype=np.int64)
        attention_mask = np.array([enc.attention_mask for enc in encodings], dtype=np.int64)
        token_counts = [int(np.count_nonzero(mask)) for mask in attention_mask]

        try:
            hidden = self.model.forward(input_ids, token_type_ids, attention_mask)
        except (ValueError, IndexError) as exc:
            raise EmbeddingError(f"failed to run BERT forward pass: {exc}") from exc
        pooled = mean_pool(hidden, attention_mask, self.normalize)

        rows = [
            EmbeddingRow(text, count, len(vector), vector)
            for text, count, vector in zip(texts, token_counts, pooled.tolist())
        ]
        return EmbeddingBatch(
            rows=rows,
            total_tokens=sum(row.token_count for row in rows),
            dimensions=rows[0].dimensions if rows else 0,
        )


def embed(options: EmbedOptions) -> EmbeddingSummary:
    runner = EmbeddingRunner(options)
    batch = runner.embed_texts(options.texts)
    return EmbeddingSummary(
        repo=runner.repo,
        revision=runner.revision,
        config_path=runner.config_path,
        tokenizer_path=runner.tokenizer_path,
        weights_path=runner.weights_path,
        device=device_label(runner.device),
        normalized=runner.normalize,
        embeddings=batch.rows,
    )


def similarity(options: EmbedOptions) -> SimilaritySummary:
    """Embed the texts and score every pair, most similar first."""
    if len(options.texts) < 2:
        raise EmbeddingError("similarity requires at least two --text values")
    runner = EmbeddingRunner(options)
    batch = runner.embed_texts(options.texts)
    pairs = [
        SimilarityPair(
            left_index=left,
            right_index=right,
            left_text=left_row.text,
            right_text=right_row.text,
            cosine_similarity=cosine_similarity(left_row.embedding, right_row.embedding),
        )
        for left, left_row in enumerate(batch.rows)
        for right, right_row in enumerate(batch.rows)
        if right > left
    ]
    pairs.sort(key=lambda pair: (-pair.cosine_similarity, pair.left_index, pair.right_index))
    return SimilaritySummary(
        repo=runner.repo,
        revision=runner.revision,
        device=device_label(runner.device),
        normalized=runner.normalize,
        dimensions=batch.dimensions,
        pairs=pairs,
    )


def benchmark(options: EmbedOptions, warmup_iters: int, timed_iters: int) -> EmbeddingBenchmarkSummary:
    """Time repeated embedding of the same batch after some warmup runs."""
    if warmup_iters <= 0:
        raise EmbeddingError("--warmup-iters must be greater than 0")
    if timed_iters <= 0:
        raise EmbeddingError("--iters must be greater than 0")

    runner = EmbeddingRunner(options)
    texts = list(options.texts)
    batch: EmbeddingBatch | None = None
    for _ in range(warmup_iters):
        batch = runner.embed_texts(texts)

    elapsed = 0.0
    for _ in range(timed_iters):
        start = time.perf_counter()
        batch = runner.embed_texts(texts)
        elapsed += time.perf_counter() - start

    if batch is None:
        raise EmbeddingError("benchmark did not produce an embedding batch")

    tokens_per_iter = batch.total_tokens
    batch_size = len(batch.rows)
    total_tokens = tokens_per_iter * timed_iters
    total_embeddings = batch_size * timed_iters

    def rate(count: int) -> float:
        return count / elapsed if elapsed > 0 else float("inf")

    return EmbeddingBenchmarkSummary(
        repo=runner.repo,
        revision=runner.revision,
        device=device_label(runner.device),
        normalized=runner.normalize,
        batch_size=batch_size,
        dimensions=batch.dimensions,
        warmup_iters=warmup_iters,
        timed_iters=timed_iters,
        tokens_per_iter=tokens_per_iter,
        total_tokens=total_tokens,
        total_embeddings=total_embeddings,
        total_elapsed_ms=elapsed * 1000.0,
        avg_iter_ms=(elapsed / timed_iters) * 1000.0,
        embeddings_per_sec=rate(total_embeddings),
        tokens_per_sec=rate(total_tokens),
    )


def _dump(summary) -> str:
    return json.dumps(asdict(summary), indent=2, default=str)


def run(options: EmbedOptions) -> None:
    summary = embed(options)
    rows = summary.embeddings
    if not rows:
        return
    if len(rows) == 1 and not rows[0].embedding:
        raise EmbeddingError("embedding output was empty")
    if summary.normalized and not rows[0].embedding:
        raise EmbeddingError("normalized embedding output was empty")
    if rows[0].dimensions == 0:
        raise EmbeddingError("embedding dimension was 0")
    if len(rows[0].embedding) != rows[0].dimensions:
        raise EmbeddingError("embedding length did not match reported dimension")
    if any(not row.embedding for row in rows):
        raise EmbeddingError("one or more embeddings were empty")

    if options.json_output:
        print(_dump(summary))
    else:
        _print_human_summary(summary)


def run_similarity(options: EmbedOptions) -> None:
    summary = similarity(options)
    if options.json_output:
        print(_dump(summary))
    else:
        _print_similarity_summary(summary)


def run_benchmark(options: EmbedOptions, warmup_iters: int, timed_iters: int) -> None:
    if not options.texts:
        options = replace(options, texts=[_DEFAULT_BENCH_TEXT])
    summary = benchmark(options, warmup_iters, timed_iters)
    if options.json_output:
        print(_dump(summary))
    else:
        _print_benchmark_summary(summary)


def _print_header(title: str, repo: str, revision: str | None) -> None:
    print(title)
    print("=" * len(title))
    print(f"repo: {repo}")
    if revision is not None:
        print(f"revision: {revision}")


def _print_human_summary(summary: EmbeddingSummary) -> None:
    _print_header("Embedding", summary.repo, summary.revision)
    print(f"device: {summary.device}")
    print(f"weights: {summary.weights_path}")
    print(f"normalized: {str(summary.normalized).lower()}")
    print()
    for number, row in enumerate(summary.embeddings, start=1):
        print(f"text #{number}: {row.text}")
        print(f"tokens: {row.token_count}")
        print(f"dimensions: {row.dimensions}")
        preview = ", ".join(f"{value:.6f}" for value in row.embedding[:12])
        print(f"preview: [{preview}, ...]")
        print()


def _print_similarity_summary(summary: SimilaritySummary) -> None:
    _print_header("Embedding similarity", summary.repo, summary.revision)
    print(f"device: {summary.device}")
    print(f"dimensions: {summary.dimensions}")
    print(f"normalized: {str(summary.normalized).lower()}")
    print()
    for pair in summary.pairs:
        print(f"#{pair.left_index + 1}/#{pair.right_index + 1}  cosine={pair.cosine_similarity:.6f}")
        print(f"  left:  {pair.left_text}")
        print(f"  right: {pair.right_text}")
        print()


def _print_benchmark_summary(summary: EmbeddingBenchmarkSummary) -> None:
    _print_header("Embedding benchmark", summary.repo, summary.revision)
    print(f"device: {summary.device}")
    print(f"batch size: {summary.batch_size}")
    print(f"dimensions: {summary.dimensions}")
    print(f"tokens / iter: {summary.tokens_per_iter}")
    print(f"warmup iters: {summary.warmup_iters}")
    print(f"timed iters: {summary.timed_iters}")
    print()
    print(f"total elapsed: {summary.total_elapsed_ms:.3f}ms")
    print(f"avg / iter: {summary.avg_iter_ms:.3f}ms")
    print(f"embeddings/sec: {summary.embeddings_per_sec:.2f}")
    print(f"tokens/sec: {summary.tokens_per_sec:.2f}")


def resolve_model_files(
    repo: str,
    revision: str | None,
    config_file: str,
    tokenizer_file: str,
    weights_file: str,
    cache_dir: str | os.PathLike | None,
    no_progress: bool,
) -> tuple[Path, Path, Path]:
    """Use local files when all three exist, otherwise fetch them from the hub."""
    if is_local_triplet(config_file, tokenizer_file, weights_file):
        return Path(config_file), Path(tokenizer_file), Path(weights_file)

    client = HubClient(cache_dir, progress=not no_progress)

    def fetch(name: str) -> Path:
        try:
            return client.get(repo, HubRepoType.MODEL, revision, name)
        except HubError as exc:
            raise EmbeddingError(f"failed to fetch {name}: {exc}") from exc

    return fetch(config_file), fetch(tokenizer_file), fetch(weights_file)


def is_local_triplet(config_file: str, tokenizer_file: str, weights_file: str) -> bool:
    return all(Path(name).exists() for name in (config_file, tokenizer_file, weights_file))


def normalize_sentence_transformers_repo(repo: str) -> str:
    """Resolve bare model names under the sentence-transformers namespace."""
    return repo if "/" in repo else f"sentence-transformers/{repo}"


def cosine_similarity(left, right) -> float:
    """Cosine similarity of two equally long, non-zero float32 vectors."""
    left_vec = np.asarray(left, dtype=np.float32)
    right_vec = np.asarray(right, dtype=np.float32)
    if left_vec.shape != right_vec.shape:
        raise EmbeddingError(
            f"embedding dimensions differ: left={left_vec.size} right={right_vec.size}"
        )
    if left_vec.size == 0:
        raise EmbeddingError("embedding vectors are empty")
    dot = np.float32(np.dot(left_vec, right_vec))
    left_norm = np.float32(np.dot(left_vec, left_vec))
    right_norm = np.float32(np.dot(right_vec, right_vec))
    if left_norm <= _F32_EPSILON or right_norm <= _F32_EPSILON:
        raise EmbeddingError("cannot compute cosine similarity for a zero-norm embedding")
    return float(dot / (np.sqrt(left_norm) * np.sqrt(right_norm)))