# relaycore

Building blocks for a Nostr relay, written with nothing but the Python
standard library.

## Modules

### `relaycore.subscription`

- `Subscription.parse(raw)` reads a `["REQ", <id>, <filter>...]` message from
  JSON text. `Subscription.from_value(value)` does the same for an already
  decoded list. Both need at least one filter. They raise
  `SubscriptionError` (a `ValueError`) when the message is not an array,
  does not start with `"REQ"`, has a subscription id that is not a string, or
  has a filter that cannot be read. A filter that repeats the one just before
  it is dropped.
- `ReqFilter.from_value(value)` reads one filter object. It reads `ids` and
  `authors` (prefix lists; an empty prefix raises `SubscriptionError`),
  `kinds`, `since`, `until`, `limit` and single-letter tag queries such as
  `#e` or `#p`. Values of the wrong type are ignored. A multi-letter tag
  query such as `#foo` makes the filter match nothing. `ReqFilter.to_json()`
  turns a filter back into a JSON-ready dict.
- `Event` holds the fields used for matching. `tag_values_by_name(name)`
  lists the first value of every tag with that name.
  `generic_tag_val_intersect(tagname, check)` tells whether any of those
  values is in `check`.
- `Subscription.interested_in_event(event)` is true when any filter matches.
  A filter's author prefixes also match the event's `delegated_by` key.
- `Subscription.needs_historical_events()` is false only when every filter
  has `limit` 0.
- `Subscription.is_scraper()` flags subscriptions that have a filter too
  broad to be anything but a scrape.

### `relaycore.utils`

`unix_time()`, `is_hex()`, `is_lower_hex()`, `is_nip19()` (an `npub` or
`note` prefix), `nip19_to_hex()` and `host_str()`. `nip19_to_hex()` decodes
bech32 or bech32m text into hex and raises `Bech32Error` on bad input.
`host_str()` returns the host of an absolute URL, or `None`.

### `relaycore.metrics`

This module has `Counter`, `CounterVec` (counters with label values, through
`labels(...)`), `Gauge` and `Histogram`. It also has a `Registry` that
refuses two metrics with the same name. `render()` writes the Prometheus
text exposition format, and a `CounterVec` with no label values in use
writes nothing. `create_metrics()` returns a registry and a `NostrMetrics`
holding the relay's standard metrics: query and write timings, events sent,
connections, disconnects, aborted queries and command counts.

### `relaycore.delivery`

This module builds the messages sent to clients: `event_message()`,
`eose_message()`, `notice_message()`, `ok_message()` and
`auth_challenge_message()`. Subscription ids have double quotes removed.
`check_message_size(msg, max_bytes)` returns the UTF-8 size of a message
and raises `MessageTooLargeError` when it is over a non-zero limit.
`allowed_to_send(event_str, auth_pubkey, nip42_dms)` decides whether an
event may go to a client. When `nip42_dms` is on, direct-message kinds
(4, 44, 1059) go only to their first `p` recipient or their author, and
text that is not a valid event is never sent.

### `relaycore.pages`

`join_page()`, `invoice_page(admission_cost, qr_markup, bolt11, pubkey)`
and `account_page(pubkey, admitted)` render the HTML for signing up to a
paid relay. `admitted` may be `None` when the status is unknown.

### `relaycore.web`

`handle_request(path, query, headers, site, registry, favicon)` answers one
request and returns a `WebResponse`:

- `/` returns the relay information document (from `SiteOptions.relay_info`)
  when the `Accept` header asks for `application/nostr+json`. Otherwise it
  redirects to `/join` on a paid relay, or serves the `relay_page` file or a
  plain message. With an `Upgrade` header it answers the WebSocket handshake
  with `101` or `400`.
- `/metrics` returns `registry.render()`.
- `/favicon.ico` returns the favicon bytes, or `404` when there are none.
- `/terms` returns `SiteOptions.terms_message`.
- `/join` returns the sign-up page.
- `/invoice` returns the invoice page.
- `/account` returns the account status page.
- `/lnbits` takes a payment callback that carries a `payment_hash`.
- Anything else gets `404`.

Public keys in the query may be hex or `npub`. A key that is not a valid
secp256k1 x-coordinate is refused with `401`.

`SiteOptions` holds the settings and the hooks into account payments:
`account_status`, `request_invoice`, `check_account`, `on_invoice_paid` and
`qr_renderer`. Its docstring describes what each hook is given and must
return.

The module also has these helpers: `get_pubkey()`, `get_header_string()`,
`file_bytes()`, and `client_info_from_headers()`, which returns a
`ClientInfo` and prefers a proxy's IP header when one is configured.

`make_wsgi_app(site, registry, favicon)` wraps all of this as a WSGI
application, with `/lnbits` reading the request body. WSGI cannot take over
a connection, so WebSocket upgrade requests get a `400` there.

## Examples

```python
from relaycore.subscription import Subscription

sub = Subscription.parse('["REQ","feed",{"authors":["abc"],"kinds":[1]}]')
sub.needs_historical_events()   # True
sub.is_scraper()                # False
```

```python
from relaycore.utils import nip19_to_hex

nip19_to_hex("npub180cvv07tjdrrgpa0j7j7tmnyl2yr6yr7l8j4s3evf6u64th6gkwsyjh6w6")
# '3bf0c63fcb93463407af97a5e5ee64fa883d107ef9e558472c4eb9aaaefa459d'
```

```python
from relaycore.delivery import eose_message

eose_message("feed")   # '["EOSE","feed"]'
```

```python
from wsgiref.simple_server import make_server
from relaycore.metrics import create_metrics
from relaycore.web import SiteOptions, make_wsgi_app

registry, metrics = create_metrics()
app = make_wsgi_app(SiteOptions(), registry, None)
make_server("127.0.0.1", 8080, app).serve_forever()
```

## What this package does not do

It is a library, not a running relay. It has no command line, and it does
not speak the WebSocket protocol after the handshake. It does not store
events, check event ids or signatures, authenticate clients, or create
Lightning invoices. Those jobs are left to the code that uses it, through
the `SiteOptions` hooks and the functions above.

## Running the tests

Install the `test` extra and run `pytest` from the project directory.