"""Command line interface."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from . import bench, embeddings, gguf, hub, inspect, tokenizer_lab, tui
from .backend import parse_backend
from .embeddings import EmbedOptions


def _backend_type(value: str):
    try:
        return parse_backend(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


def _repo_type(value: str):
    try:
        return hub.parse_repo_type(value)
    except Exception as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


def _add_model_args(
    parser: argparse.ArgumentParser,
    *,
    text_help: str,
    texts_required: bool,
    normalize_help: str,
    json_help: str,
) -> None:
    local_hint = "or a local path when all three file args are local"
    parser.add_argument(
        "--repo",
        default="all-MiniLM-L6-v2",
        help="Hub model repo. Bare names are resolved under sentence-transformers/.",
    )
    parser.add_argument("--revision", help="Optional revision, branch, tag, or commit.")
    parser.add_argument(
        "--config-file", default="config.json", help=f"Config filename in the Hub repo, {local_hint}."
    )
    parser.add_argument(
        "--tokenizer-file", default="tokenizer.json", help=f"Tokenizer filename in the Hub repo, {local_hint}."
    )
    parser.add_argument(
        "--weights-file",
        default="model.safetensors",
        help=f"Safetensors filename in the Hub repo, {local_hint}.",
    )
    parser.add_argument("--cache-dir", type=Path, help="Optional Hugging Face cache directory.")
    parser.add_argument(
        "--text", dest="texts", action="append", required=texts_required, help=text_help
    )
    parser.add_argument("--no-normalize", action="store_true", help=normalize_help)
    parser.add_argument("--max-length", type=int, default=512, help="Maximum tokenizer sequence length.")
    parser.add_argument(
        "--backend", type=_backend_type, default="cpu", help="Backend: cpu, metal, or auto."
    )


def _add_common_tail(parser: argparse.ArgumentParser, json_help: str) -> None:
    parser.add_argument("--no-progress", action="store_true", help="Disable hub progress bars.")
    parser.add_argument("--json", dest="json_output", action="store_true", help=json_help)


def _embed_options(args: argparse.Namespace) -> EmbedOptions:
    return EmbedOptions(
        repo=args.repo,
        revision=args.revision,
        config_file=args.config_file,
        tokenizer_file=args.tokenizer_file,
        weights_file=args.weights_file,
        cache_dir=args.cache_dir,
        texts=list(args.texts or []),
        normalize=not args.no_normalize,
        max_length=args.max_length,
        backend=args.backend,
        json_output=args.json_output,
        no_progress=args.no_progress,
    )


def _cmd_inspect(args: argparse.Namespace) -> None:
    runner = gguf.run if args.path.suffix == ".gguf" else inspect.run
    runner(args.path, args.json_output, args.limit)


def _cmd_download(args: argparse.Namespace) -> None:
    hub.run_download(
        args.repo,
        args.repo_type,
        args.revision,
        list(args.files),
        args.cache_dir,
        args.no_progress,
        args.json_output,
    )


def _cmd_tokenize(args: argparse.Namespace) -> None:
    tokenizer_lab.run(args.tokenizer, args.text, args.json_output)


def _cmd_embed(args: argparse.Namespace) -> None:
    embeddings.run(_embed_options(args))


def _cmd_similarity(args: argparse.Namespace) -> None:
    embeddings.run_similarity(_embed_options(args))


def _cmd_bench_embed(args: argparse.Namespace) -> None:
    embeddings.run_benchmark(_embed_options(args), args.warmup_iters, args.iters)


def _cmd_tui(args: argparse.Namespace) -> None:
    tui.run(args.path)


def _cmd_bench_matmul(args: argparse.Namespace) -> None:
    bench.run_matmul(args.size, args.iters, args.backend)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="candlebench", description="Inspect and benchmark local ML models"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    p = commands.add_parser(
        "inspect", help="Inspect a .safetensors or .gguf model file without loading tensor data."
    )
    p.add_argument("path", type=Path, help="Path to a .safetensors or .gguf file.")
    p.add_argument("--json", dest="json_output", action="store_true", help="Output full summary as JSON.")
    p.add_argument("--limit", type=int, default=30, help="Number of tensor rows to show in table output.")
    p.set_defaults(handler=_cmd_inspect)

    p = commands.add_parser("download", help="Download files from a Hugging Face Hub repository.")
    p.add_argument("--repo", required=True, help="Hub repository id.")
    p.add_argument(
        "--repo-type", type=_repo_type, default="model", help="Hub repository type: model, dataset, or space."
    )
    p.add_argument("--revision", help="Optional revision, branch, tag, or commit.")
    p.add_argument("--cache-dir", type=Path, help="Optional Hugging Face cache directory.")
    _add_common_tail(p, "Output downloaded paths as JSON.")
    p.add_argument("files", nargs="*", help="File path(s) inside the repository.")
    p.set_defaults(handler=_cmd_download)

    p = commands.add_parser("tokenize", help="Tokenize text with a tokenizer.json file.")
    p.add_argument("tokenizer", type=Path, help="Path to tokenizer.json.")
    p.add_argument("text", help="Text to encode.")
    p.add_argument("--json", dest="json_output", action="store_true", help="Output tokens as JSON.")
    p.set_defaults(handler=_cmd_tokenize)

    p = commands.add_parser("embed", help="Run BERT-style sentence embedding inference.")
    _add_model_args(
        p,
        text_help="Text to embed. Repeat for batches.",
        texts_required=True,
        normalize_help="Disable L2 normalization.",
        json_help="Output full embeddings as JSON.",
    )
    _add_common_tail(p, "Output full embeddings as JSON.")
    p.set_defaults(handler=_cmd_embed)

    p = commands.add_parser("similarity", help="Compute pairwise cosine similarity between embedded texts.")
    _add_model_args(
        p,
        text_help="Text to compare. Repeat at least twice.",
        texts_required=True,
        normalize_help="Disable L2 normalization before similarity calculation.",
        json_help="Output pairwise scores as JSON.",
    )
    _add_common_tail(p, "Output pairwise scores as JSON.")
    p.set_defaults(handler=_cmd_similarity)

    p = commands.add_parser("bench-embed", help="Benchmark BERT-style embedding throughput.")
    _add_model_args(
        p,
        text_help="Text to embed in each benchmark batch. Repeat to increase batch size.",
        texts_required=False,
        normalize_help="Disable L2 normalization.",
        json_help="Output benchmark metrics as JSON.",
    )
    p.add_argument("--warmup-iters", type=int, default=2, help="Number of untimed warmup iterations.")
    p.add_argument("--iters", type=int, default=10, help="Number of timed iterations.")
    _add_common_tail(p, "Output benchmark metrics as JSON.")
    p.set_defaults(handler=_cmd_bench_embed)

    p = commands.add_parser("tui", help="Open a small terminal dashboard for a model file.")
    p.add_argument("path", nargs="?", type=Path, help="Optional .safetensors or .gguf file to inspect.")
    p.set_defaults(handler=_cmd_tui)

    p = commands.add_parser("bench-matmul", help="Run a simple matrix multiplication benchmark.")
    p.add_argument("--size", type=int, default=1024, help="Matrix dimension.")
    p.add_argument("--iters", type=int, default=10, help="Number of timed iterations.")
    p.add_argument("--backend", type=_backend_type, default="cpu", help="Backend: cpu, metal, or auto.")
    p.set_defaults(handler=_cmd_bench_matmul)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the command line; returns the process exit status."""
    args = build_parser().parse_args(argv)
    try:
        args.handler(args)
    except KeyboardInterrupt:
        return 130
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0