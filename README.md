# crackhash

A small distributed system for recovering the words behind an MD5 hash by
brute force. It has two parts:

- **manager**: takes crack requests over HTTP/JSON. It works out how many
  parts the search space splits into and sends each part to a worker as XML.
  It collects the results and reports the status of each task. It ships as a
  library: a service class (`crackhash.manager_service.HashCrackService`) and
  a Flask app (`crackhash.manager_app.create_app`).
- **worker**: takes one part of the search. It walks its slice of every word
  over the alphabet `a-z0-9`, from length 1 up to the maximum length, and
  posts the words it matches back to the manager's webhook. It comes with a
  command, `crackhash-worker`.

## Installation

```
pip install .
```

## Configuration

Configuration is read from a YAML file. The path comes from the `CONFIG_FILE`
environment variable and defaults to `config/config.yaml`. Environment
variables override the file, and a `.env` file in the working directory is
loaded first. `crackhash.config.load_worker_config()` and
`crackhash.config.load_manager_config()` read and check it.

Worker example:

```yaml
server:
  env: dev          # dev or prod
  port: 8081
manager:
  address: http://localhost:8080
task:
  split:
    strategy: chunk-based
    chunkSize: 10000000
  concurrency: 1000
```

Manager example:

```yaml
server:
  env: dev
  port: 8080
worker:
  addresses:
    - http://localhost:8081
  health:
    path: /api/worker/health/readiness
    interval: 1m
    timeout: 1m
    retries: 3
task:
  split:
    strategy: chunk-based
    chunkSize: 10000000
  timeout: 1h
  limit: 10
  maxAge: 24h
  finishDelay: 1m
```

Durations use the forms `90s`, `1m`, `1h30m` and so on.

## Running a worker

```
crackhash-worker server
```

This serves the worker API until SIGINT, SIGTERM or SIGQUIT arrives.

To check that a running worker is ready:

```
crackhash-worker healthcheck --host localhost:8081
```

To print version information:

```
crackhash-worker version
```

## Running a manager

The package has no manager command. Build one from its parts:

```python
from crackhash.config import load_manager_config
from crackhash.httpclient import HttpClient, RoundRobinBalancer
from crackhash.manager_app import create_app
from crackhash.manager_service import HashCrackService
from crackhash.repository import InMemoryTaskRepository
from crackhash.server import BackgroundServer
from crackhash.tasksplit import create_splitter

config = load_manager_config()
health = config.worker.health
balancer = RoundRobinBalancer(
    config.worker.addresses, health.path, health.timeout, health.interval, health.retries
)
client = HttpClient(balancer=balancer, retries=3, min_wait=5.0, max_wait=10.0)
splitter = create_splitter(config.task.split.strategy, config.task.split.chunk_size)
service = HashCrackService(config.task, client, InMemoryTaskRepository(), splitter)

server = BackgroundServer(create_app(service), config.server.port)
server.start()
```

## HTTP API

Manager:

- `POST /api/manager/hash/crack` with body `{"hash": "<md5 hex>", "maxLength": 4}`
  returns `202 {"requestId": "..."}`, or 429 when too many tasks are in progress.
- `GET /api/manager/hash/crack/status?requestID=...` returns
  `{"status": "IN_PROGRESS" | "READY" | "PARTIAL_READY" | "ERROR", "data": [...]}`.
- `POST /internal/api/manager/hash/crack/webhook` takes a worker's XML result.
- `GET /api/manager/health/readiness` and `/api/manager/health/liveness`.

Worker:

- `POST /internal/api/worker/hash/crack/task` takes one part as XML and
  answers 202; the search runs in the background.
- `GET /api/worker/health/readiness` and `/api/worker/health/liveness`.

Errors come back as JSON with `timestamp`, `message`, `status` and `path`. If
the request was sent as XML, they come back as XML instead.

## Using the building blocks

```python
from crackhash.combin import AlphabetIterator
from crackhash.bruteforce import ChunkBasedBruteForce
from crackhash.tasksplit import ChunkBasedSplitter

words = list(AlphabetIterator("abc", 2, 0))        # a, b, c, aa, ab, ...
parts = ChunkBasedSplitter(10_000_000).split(4, 36)
found = ChunkBasedBruteForce(1000).brute_force_md5(
    "900150983cd24fb0d6963f7d28e17f72", list("abc"), 3, 0
)  # ["abc"]
```

## What the package does not do

- There is no manager command line and no manager container; the manager has
  to be assembled in code as shown above.
- There is no periodic job runner. `HashCrackService.delete_expired_tasks()`
  and `HashCrackService.finish_timeout_tasks()` do nothing unless the
  application embedding the manager calls them on its own schedule.
- Tasks are kept in memory only (`InMemoryTaskRepository`); they are lost when
  the manager stops.
- No API specification or documentation pages are served.

## Tests

```
pip install .[test]
pytest
```