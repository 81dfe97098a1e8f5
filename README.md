# candlebench

A command-line toolbox for local machine-learning model files. It inspects
SafeTensors and GGUF files, downloads files from a model hub into a local
cache, shows how a `tokenizer.json` encodes text, computes BERT-style sentence
embeddings and their pairwise cosine similarity with a numpy encoder, and runs
small throughput benchmarks.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Commands

Everything is reached through the `candlebench` command. On failure it prints
`Error: <message>` to standard error and exits with status 1 (130 on Ctrl-C).

### inspect

```
candlebench inspect model.safetensors
candlebench inspect model.gguf --limit 50
candlebench inspect model.safetensors --json
```

Reads only the file header and reports file size, tensor count, total tensor
bytes, a rough parameter count, a count of tensors per dtype, and a table of
tensors (name, dtype, shape, parameters, bytes) sorted largest first, ties by
name. Files ending in `.gguf` are parsed as GGUF (versions 1 to 3) and also
list their metadata keys, value types and values, sorted by key, along with
the tensor data offset; any other file is read as SafeTensors, whose header
is validated (known dtypes, offsets matching shapes, contiguous data covering
the whole buffer). `--limit` sets how many table rows are shown (default 30);
`--json` prints the full summary instead.

### download

```
candlebench download --repo sentence-transformers/all-MiniLM-L6-v2 config.json tokenizer.json
```

Fetches each named file and prints `file -> local path` (or a JSON list with
`--json`). Options: `--repo-type` (`model`, `dataset` or `space`, default
`model`), `--revision` (default `main`), `--cache-dir`, `--no-progress`.

Files are kept in a snapshot cache laid out as
`<cache>/<models|datasets|spaces>--<owner>--<name>/snapshots/<commit>/<file>`
and are not downloaded again once present. The cache directory is taken from
`--cache-dir`, else `HF_HUB_CACHE`, else `$HF_HOME/hub`, else
`~/.cache/huggingface/hub`. `HF_ENDPOINT` overrides the hub address and
`HF_TOKEN`, when set, is sent as a bearer token. Progress is a byte counter
on standard error.

### tokenize

```
candlebench tokenize tokenizer.json "Hello world"
candlebench tokenize tokenizer.json "Hello world" --json
```

Shows the vocabulary size and, for each token, its id, text, type id,
attention mask and character offsets, with special tokens added by the
tokenizer's post-processor.

### embed, similarity, bench-embed

```
candlebench embed --text "The cat sat on the mat." --text "A dog barked."
candlebench similarity --text "first sentence" --text "second sentence" --text "third sentence"
candlebench bench-embed --text "benchmark sentence" --warmup-iters 2 --iters 10
```

The model is named by `--repo` (default `all-MiniLM-L6-v2`); bare names are
resolved under `sentence-transformers/`. The config, tokenizer and weights
come from `--config-file`, `--tokenizer-file` and `--weights-file` (defaults
`config.json`, `tokenizer.json`, `model.safetensors`): when all three name
existing local files they are used directly, otherwise they are fetched from
the hub as with `download` (`--revision`, `--cache-dir`, `--no-progress`
apply).

Texts are tokenized with truncation at `--max-length` (default 512) and
padded to the longest in the batch; the encoder output is mean-pooled over
real tokens and L2-normalized unless `--no-normalize` is given.

- `embed` prints each text's token count, dimension and the first twelve
  values (`--json` gives full vectors).
- `similarity` needs at least two `--text` values and lists every pair by
  cosine similarity, highest first.
- `bench-embed` runs `--warmup-iters` untimed passes (default 2) and `--iters`
  timed passes (default 10), then reports total and per-iteration time,
  embeddings per second and tokens per second. Without `--text` it embeds
  `Candlebench embedding benchmark sentence.`

All three accept `--backend` and `--json`.

### bench-matmul

```
candlebench bench-matmul --size 1024 --iters 10
```

Multiplies two random float32 square matrices once to warm up, then times
`--iters` multiplications and prints the total time, time per iteration and
a rough GFLOP/s figure (2·N³ operations per multiplication).

### tui

```
candlebench tui model.safetensors
candlebench tui
```

A curses dashboard. With a `.safetensors` file it lists the largest tensors;
with a `.gguf` file it lists the metadata; with no file it shows the command
list. `j`/`k` or the arrow keys scroll by one row, Page Up/Page Down by ten,
and `q` or `Esc` quits. Other file extensions are refused.

## Using it as a library

The modules can be used directly, for example:

- `candlebench.inspect.inspect_safetensors(path)` and
  `candlebench.gguf.inspect_gguf(path)` return summary dataclasses with a
  `to_dict()` method; `candlebench.gguf.read_content(stream)` parses a GGUF
  header from any binary stream.
- `candlebench.tokenizer.load_tokenizer(path)` returns a `Tokenizer` with
  `encode`, `encode_batch`, `vocab_size`, `set_truncation` and `set_padding`.
- `candlebench.embeddings.embed`, `similarity` and `benchmark` take an
  `EmbedOptions` and return summary dataclasses;
  `candlebench.embeddings.cosine_similarity(left, right)` scores two vectors.
- `candlebench.hub.HubClient(cache_dir, progress).get(repo, repo_type, revision, filename)`
  returns the local path of a hub file.

## Limitations

- Everything runs on the CPU with numpy. `--backend auto` selects the CPU;
  `--backend metal` fails with "Metal backend is not available in this
  build". There is no GPU support.
- The tokenizer understands only WordPiece and WordLevel models, with
  BERT-style, lowercase, accent-stripping and Unicode normalizers,
  `BertPreTokenizer`, `Whitespace` and `WhitespaceSplit` pre-tokenizers, and
  BERT, RoBERTa-style or template post-processors. BPE and Unigram
  tokenizers are rejected.
- Embeddings use a BERT encoder only; other architectures are not supported.
- GGUF inspection recognises the F32, F16, BF16, Q4_0, Q4_1, Q5_0, Q5_1,
  Q8_0, Q8_1 and Q2K to Q8K tensor types; files with others are rejected.
- The dashboard relies on Python's `curses` module, which is not part of
  every Python installation (for example on Windows).