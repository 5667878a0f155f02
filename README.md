# minnowutil

Building blocks for a TCP/IP stack that runs in user space on Linux.

## Modules

- `minnowutil.parser`: `Parser` and `Serializer` for big-endian wire formats over lists of byte buffers, plus the helpers `serialize(obj)` (returns a list of `bytes` chunks) and `parse(obj, buffers, *args)` (returns `True` if parsing succeeded). A `Parser` that runs out of input does not raise; it records an error, reported by `has_error()`.
- `minnowutil.checksum`: `InternetChecksum`, the ones'-complement Internet checksum, fed incrementally with `add()` and read with `value()`.
- `minnowutil.ethernet`: `EthernetHeader` and `EthernetFrame`, the constant `ETHERNET_BROADCAST`, and `format_ethernet_address` to print an address as `aa:bb:cc:dd:ee:ff`.
- `minnowutil.arp`: `ARPMessage`, for Ethernet/IPv4 ARP requests and replies. `supported()` tells whether a message is of that kind; serializing any other kind raises `ValueError`.
- `minnowutil.ipv4`: `IPv4Header` (options are skipped when parsing and never written) and `IPv4Datagram`, also available as `InternetDatagram`. Parsing checks the version, header length and header checksum.
- `minnowutil.tcp_segment`: `TCPSenderMessage`, `TCPReceiverMessage`, `TCPMessage`, `UserDatagramInfo` and `TCPSegment`, which parses and writes the TCP wire format and computes its checksum from the IPv4 pseudo-header sum. Sequence and acknowledgment numbers are plain 32-bit integers.
- `minnowutil.errors`: `TaggedError` and `UnixError`, `OSError` subclasses that name the operation that failed, and `check_system_call`.
- `minnowutil.address`: `Address`, built with `Address.from_ip(ip, port)`, `Address.from_ipv4_numeric(n)` or `Address.resolve(hostname, service)`, with `ip()`, `port()`, `ip_port()` and `ipv4_numeric()`.
- `minnowutil.file_descriptor`: `FileDescriptor`, a handle that counts its reads and writes, tracks end of file, can be shared with `duplicate()` and works as a context manager.
- `minnowutil.sockets`: `UDPSocket`, `TCPSocket`, `PacketSocket`, `LocalStreamSocket` and `LocalDatagramSocket`, built on `FileDescriptor`.
- `minnowutil.eventloop`: `EventLoop`, a poll-based loop of rules, each with an optional interest test and a callback. `wait_next_event(timeout_ms)` serves at most one rule and returns a `Result` (`SUCCESS`, `TIMEOUT` or `EXIT`); `add_rule` and `add_basic_rule` return a `RuleHandle` that can cancel the rule.
- `minnowutil.tun`: `TunFD` and `TapFD`, for persistent TUN/TAP devices.
- `minnowutil.rng`: `get_random_engine()`, a `random.Random` seeded from the operating system's entropy.
- `minnowutil.tcp_config`: `TCPConfig` and `FdAdapterConfig`.
- `minnowutil.adapters`: `TCPOverIPv4Adapter`, `TCPOverIPv4OverTunFdAdapter` and `LossyFdAdapter`, which carry TCP messages inside IPv4 datagrams on a TUN device and can drop traffic at configured rates.

## Install

```
pip install .
pip install ".[test]"   # to run the tests
```

## Example

Build an IPv4 datagram, serialize it and parse it back:

```python
from minnowutil.ipv4 import IPv4Datagram
from minnowutil.parser import parse, serialize

dgram = IPv4Datagram()
dgram.header.length = 20
dgram.header.compute_checksum()

wire = serialize(dgram)          # list of bytes chunks

copy = IPv4Datagram()
assert parse(copy, wire)         # the header checksum is checked
print(copy.header)               # IPv4 len=20 protocol=6 ttl=128 src=0.0.0.0 dst=0.0.0.0
```

Wrap a TCP message in an IPv4 datagram:

```python
from minnowutil.adapters import TCPOverIPv4Adapter
from minnowutil.address import Address
from minnowutil.tcp_segment import TCPMessage

adapter = TCPOverIPv4Adapter()
adapter.config().source = Address.from_ip("10.0.0.1", 4000)
adapter.config().destination = Address.from_ip("10.0.0.2", 80)

datagram = adapter.wrap_tcp_in_ip(TCPMessage())
assert adapter.wrap_tcp_in_ip(TCPMessage()).header.dst == datagram.header.dst
```

The TUN/TAP and packet socket classes need Linux and a device that already exists, for example one made with `ip tuntap add mode tun user <user> name tun144`.

## What this package does not do

It has the wire formats, sockets, event loop and adapters, but no TCP state machine: there is no TCP sender, receiver, reassembler or byte stream, and no socket object that runs a connection in the background. `TCPConfig` holds settings for such a peer, but nothing in this package uses them beyond `FdAdapterConfig`. There is no command-line program.

## Tests

```
pytest
```