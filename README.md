# symcachekit

Building blocks for a service that downloads debug files and derives caches
from them: a YAML configuration model, the status markers stored in cache
files, cache keys and their paths on disk, statsd metrics, and JSON error
bodies for HTTP endpoints.

## Installation

```
pip install symcachekit
```

For running the test suite:

```
pip install "symcachekit[test]"
pytest
```

## Configuration

`symcachekit.config.Config` is loaded from a YAML file or string. Keys it does
not know are ignored, and every field has a default:

```python
from symcachekit.config import Config

config = Config.from_yaml("""
cache_dir: /var/cache/symbols
caches:
  downloaded:
    max_unused_for: 1d
    retry_misses_after: 1h
  diagnostics:
    retention: 1h
""")

config.cache_dir_for("objects")   # Path("/var/cache/symbols/objects")
config.caches.derived.max_lazy_recomputations   # 20
```

* `Config.load(None)` returns the defaults; `Config.load(path)` reads a file.
* `Config.from_dict(mapping)` builds a config from an already parsed mapping.
* An empty document, malformed YAML, an unreadable file or a value of the
  wrong type raises `ConfigError`.
* `cache_dir_for(name)` returns `None` when no `cache_dir` is configured.
  Without a configured `cache_dir`, the default is `/data` inside a docker
  container (see `is_docker()`) and no cache directory otherwise; `bind`
  likewise defaults to `0.0.0.0:3021` in docker and `127.0.0.1:3021` elsewhere.

Durations are parsed by `parse_duration`, in a compact form such as `500s`,
`1h`, `7d` or `1h 30m`. For the cache expiry settings `null` means "never
expire". The cache settings are grouped in `CacheConfigs` as
`DownloadedCacheConfig`, `DerivedCacheConfig` and `DiagnosticsCacheConfig`;
the latter exposes its `retention` as `max_unused_for` so all three can be read
the same way. Logging is described by `Logging` with a `LogLevel` and a
`LogFormat`, and metrics by `Metrics`, whose `statsd` address defaults to the
`STATSD_SERVER` environment variable.

The optional `shared_cache` key is read into
`symcachekit.shared_config.SharedCacheConfig`, naming exactly one backend:

```yaml
shared_cache:
  max_concurrent_uploads: 20    # default
  max_upload_queue_size: 400    # default
  filesystem:
    path: /mnt/shared-cache
```

or `gcs:` with a `bucket` and an optional `service_account_path`
(`GcsSharedCacheConfig`, `FilesystemSharedCacheConfig`).

## Cache item status

Every cache file carries its status in its first bytes
(`symcachekit.cache_status`):

* any other content: positive, the item is present;
* an empty file: negative, the item was not found;
* `malformed` followed by a message: the item could not be built;
* `cachespecificerror` followed by a message: a failure that belongs to this
  kind of cache.

```python
from symcachekit.cache_status import CacheStatus

status = CacheStatus.from_content(b"malformedunsupported format")
status.label     # "malformed"
status.details   # "unsupported format"
```

`CacheStatus.write(file)` stores a status in an open binary file and leaves the
cursor at the end: a positive status only seeks to the end, every other status
replaces the whole content with its marker and message.

## Cache keys

`symcachekit.cachekey.CacheKey` names an item within a scope (`"global"` by
default) and maps it to a path:

```python
from symcachekit.cachekey import CacheKey

key = CacheKey("foo.pdb/abc", scope="global")
key.relative_path()              # Path("global/foo_pdb_abc")
key.cache_path("/cache", 2)      # Path("/cache/2/global/foo_pdb_abc")
key.cache_path("/cache", 0)      # Path("/cache/global/foo_pdb_abc")
```

`safe_path_segment` replaces `.`, `/` and `:` with `_`. `CacheVersions` holds a
`current` version and `fallbacks`; `lookup_order()` lists them in the order
they are tried.

## Metrics

`symcachekit.metrics.configure_statsd(prefix, "host:port", tags)` sends statsd
metrics over UDP and installs the client it returns. `counter`, `gauge`,
`timer` and `histogram` record values, with keyword arguments as tags; they do
nothing until a client is installed with `configure_statsd` or `set_client`.
A `MetricsClient` can also be built around any callable that takes bytes:

```python
from symcachekit.metrics import MetricsClient

client = MetricsClient("symbolicator", sink=print, tags={"host": "a"})
client.format_metric("requests", 1, "counter", {"status": "200"})
# "symbolicator.requests:1|c|#status:200,host:a"
```

## HTTP errors

`symcachekit.errors.ResponseError(error, status)` pairs an HTTP status with an
exception or message. Without a status, malformed JSON maps to 400 and
anything else to 500. `to_response()` returns the status code and a JSON body
built by `ApiErrorResponse`: the error's message as `detail`, and the messages
of the exceptions that caused it as `causes`. Server errors are also logged.

## What this package does not do

The package describes cache files but does not manage them: it does not create
cache directories, check item expiry, bump modification times, remove expired
items, or run and deduplicate computations of cache items. It does not set up
logging from `Logging`, and it has no HTTP server and no command-line program;
`ResponseError` only builds the response a server would send.