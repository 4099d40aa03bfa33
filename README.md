# lmd

`lmd` holds the core pieces of a Livestatus daemon: the filter and stats
model with its value matching, parsing helpers for filter headers, logging
setup, pid file handling, the distribution of monitoring backends over a
cluster of daemon nodes, and a small command line.

## Command line

    lmd -o Listen=:3333 -o Connections=site1,/var/run/live.sock

Settings are given with `-o Option=Value`. Option names are matched without
regard to case or underscores. The known options are `Listen`, `Nodes`
(both may be given several times, each adds an entry), `LogFile`,
`LogLevel`, and `Connections=name,address`, which adds a connection whose
name and id are `name`. At least one `Listen` entry and one connection are
required, and connection ids must be unique.

Other options:

    lmd --version
    lmd -o Listen=:3333 -o Connections=site1,/tmp/live.sock --pidfile /tmp/lmd.pid
    lmd -o Listen=:3333 -o Connections=site1,/tmp/live.sock --logfile stderr -vv

- `-V`, `--version` prints the version and exits with code 2.
- `--pidfile PATH` writes the process id to `PATH`; if the file names a
  process that is still running the command refuses to start (exit code 2),
  a stale file is replaced. The file is removed on exit.
- `--logfile TARGET` sets the log target (`stdout`, `stderr`,
  `stdout-journal` or a file name).
- `-v`, `-vv`, `-vvv` set the log level to info, debug and trace.

After start the command waits for signals: `SIGTERM` ends it with exit code
0, `SIGINT` with exit code 1, and `SIGHUP` reloads the settings.

## What the package does not do

The command validates its settings, sets up logging and handles signals,
but it opens no listeners, connects to no backends and answers no queries.
There is no query server, no HTTP interface, no reading of configuration
files and no export or import of backend data.

## Library

### Filters — `lmd.filter`

A `Filter` carries an `Operator` (`=`, `!=`, `=~`, `!=~`, `~`, `!~`, `~~`,
`!~~`, `<`, `<=`, `>`, `>=`, `!>=`) and a value, and matches:

- `Filter.match_string(value)`
- `Filter.match_string_list(values)` — `>=` means "list contains",
  `!>=` and `<=` mean "list does not contain"
- `Filter.match_int`, `Filter.match_int64`, `Filter.match_float`
- `Filter.match_int64_list(values)`
- `Filter.match_custom_var(variables)`
- `Filter.match_interface_list(values)`

`match_empty_filter(operator)` gives the result of a numeric filter with an
empty value. Stats filters (`StatsType`: counter, sum, avg, min, max)
accumulate values with `Filter.apply_value(value, count)`. Filter groups
use `GroupOperator` (`And`, `Or`), and `Filter.equals(other)` compares two
filter trees.

### Parsing helpers — `lmd.filterparse`

- `parse_filter_op(raw)` returns `(Operator, is_regex)` for an operator
  token, including `like`, `unlike`, `ilike` and `iunlike`; unknown tokens
  raise `ValueError`.
- `has_regexp_characters(value)` decides whether a value is probably a
  regular expression; dotted host names such as `test.local` are not.
- `set_regex_filter(flt, optimize)` compiles the regular expression, or,
  with `optimize`, turns it into an equality or substring check when the
  pattern needs no regex engine.
- `group_filters(group_op, value, stack)` implements `And: n` / `Or: n`,
  and `negate_last(stack)` implements `Negate:`.

### Utilities

- `lmd.textutil.bytes_to_valid_utf8(src, replacement)` replaces each run of
  invalid UTF-8 bytes or control characters with one `replacement`.
- `lmd.util.byte_count_binary(size)` formats sizes as `512 B`, `1.5KiB`
  and so on.
- `lmd.util.complete_peer_http_addr(addr)` completes a backend URL with
  `/thruk/cgi-bin/remote.cgi`.
- `lmd.util.time_or_never(timestamp)` formats a timestamp in local time or
  returns `never`; `lmd.util.version(build)` gives the version string.
- `lmd.util.WaitGroup` and `lmd.util.wait_timeout(group, timeout)` wait for
  background work with a time limit.
- `lmd.pidfile.check_pid_file`, `create_pid_file` and `delete_pid_file`
  manage the pid file; a running instance raises `AlreadyRunningError`.

### Logging — `lmd.logsetup`

`init_logging(log_file, log_level)` configures the `lmd` logger for stdout,
stderr, `stdout-journal` or a file, at levels `Trace`, `Debug`, `Info`,
`Warn` (the default), `Error` or `off`. `log_with(*objects)` returns a
`LogPrefixer` whose `error`, `warning`, `info`, `debug` and `trace`
messages are prefixed with the given objects, for example a name or a
context mapping with `peer`, `client` and `request` keys. `LogWriter` is a
file-like object logging whatever is written to it.

### Cluster nodes — `lmd.nodes`

`parse_node_addresses(addresses, listen)` builds `NodeAddress` entries,
completing port and scheme from the listen address. `Nodes` pings its
partners over HTTP (`send_query`, `handle_ping_response`), records which
are online and uses `assign_backends(backends, online)` to share the
configured backends evenly between the nodes that are up, calling its
`start_peer` and `stop_peer` callbacks for the backends it gains or loses.
`Nodes.is_our_backend(backend)` tells whether this node is responsible for
a backend.