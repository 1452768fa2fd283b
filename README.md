# graphite-ch

Building blocks for end-to-end tests of a Graphite backend that stores its
data in ClickHouse: caches, a reverse proxy that injects delays and errors,
helpers that drive Docker and the graphite-clickhouse binary, and functions
that compare service answers with expected results.

## Installing

```
pip install .
```

Python 3.11 or newer is needed. Nothing outside the standard library is
used. The container helpers need a Docker binary.

## Modules

### `graphite_ch.cache`

Byte caches with a lifetime per item, both implementing `BytesCache`
(`get(key)` and `set(key, value, expire)`, `expire` in seconds).

- `ExpireCache` / `new_expire_cache(maxsize)` — in-process cache bounded by
  the total size of its values in bytes (`0` means unbounded). A value larger
  than the bound is not stored; when the cache is full, expired items are
  dropped first, then the oldest ones.
- `MemcachedCache` / `new_memcached(prefix, *servers)` — stores values on
  memcached servers given as `host:port` (port 11211 if omitted). Keys are
  hashed with SHA-256 and prefixed. `get` waits at most 50 ms and then raises
  `CacheTimeoutError`; `timeouts()` counts those. `set` does not wait.

A missing or expired key raises `CacheNotFoundError`.

```python
from graphite_ch.cache import CacheNotFoundError, new_expire_cache

cache = new_expire_cache(8192)
cache.set("tags;2024-01-01", b'["host"]', 60)

try:
    body = cache.get("tags;2024-01-01")
except CacheNotFoundError:
    body = None
```

### `graphite_ch.rproxy`

`ReverseProxy` listens on a local port and forwards every request to the
URL passed to `start(remote_url)`. `url()` gives its own address. Before
forwarding it sleeps for `set_delay(seconds)`; if `set_break_status_code(code)`
is non-zero it answers every request with that status instead of forwarding.
`stop()` shuts it down.

`parse_duration("1m30s")` and `format_duration(90.0)` convert between
duration strings (`ns`, `us`, `ms`, `s`, `m`, `h`) and seconds.

### `graphite_ch.netutil`

- `get_free_tcp_port(name)` — `host:port` of a TCP port that was free when
  called (`""` means `127.0.0.1`).
- `send_plain(address, metrics)` — sends points as
  `name value timestamp` lines over TCP; each metric has `name` and `points`,
  each point `value`, `timestamp` and `delay` (seconds to pause after it).

### `graphite_ch.docker`

`Docker(binary, network)` runs docker subcommands; the binary defaults to the
`DOCKER_E2E` environment variable or `docker`, the network to
`graphite-ch-test`. `run(*args)` returns the output or raises `DockerError`.
It also has `image_delete`, `container_exists`, `container_remove` and
`container_exec`. `cmd_exec(program, *args)` runs any program and raises
`subprocess.CalledProcessError` on failure.

### `graphite_ch.templating`

`render_template(text, params)` replaces `{{.NAME}}` actions with values from
`params`, understands `{{/* comments */}}` and `{{-`/`-}}` trim markers, and
raises `TemplateError` for anything else or a missing name.
`write_config(template_path, dest, params)` renders a file to `dest`.

### `graphite_ch.carbon`

`CarbonClickhouse` (built directly or with `from_dict` from `version`,
`image`, `template`, `tz`) renders its config template with `CLICKHOUSE_URL`
and `CCH_ADDR` and starts a carbon-clickhouse container (default image
`ghcr.io/go-graphite/carbon-clickhouse:0.11.4`) with `start(test_dir,
clickhouse_url)`. `address()` is where it accepts plain-text metrics;
`stop(delete)`, `delete()` and `cleanup()` tear it down.

### `graphite_ch.graphite`

`GraphiteClickhouse` (from `binary`, `template`, `tz`) renders its config
template with `CLICKHOUSE_URL`, `CLICKHOUSE_TLS_URL`, `PROXY_URL`,
`GCH_ADDR`, `GCH_DIR` and `TEST_DIR`, and runs the binary (default
`./graphite-clickhouse`) with `-config`. `alive()` asks `/alive`, `url()` is
its address, `cmd()` its command line, `grep(text)` prints and returns the
matching lines of its log, and `stop(cleanup)` kills it.

### `graphite_ch.checks`

`compare_find_match`, `compare_tags` and `compare_render` compare an answer
with the expected `FindMatch`es, tag strings or `RenderedMetric`s and return
a list of error lines (empty when they agree), including a check of the
`X-Cached-Find` header against the expected cache TTL. `compare_render` sorts
the answer by name and compares floats with `nearly_equal`, where NaN equals
NaN. `is_find_cached(header)` and `request_id(header)` read the response
headers.

## What this package does not do

There is no command-line runner. The package does not read TOML test files,
start or query ClickHouse containers, or run a whole test suite; the pieces
above have to be put together by the caller.

## Running the package's own tests

```
pip install .[test]
pytest
```