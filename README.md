# ranstack

Building blocks for 5G radio access network control-plane software, built on `asyncio`.

## What it provides

- **MILENAGE** (`ranstack.milenage`): the `Milenage` class, keyed with K and OPc,
  computes `f1` (MAC-A) and `f2345` (RES, CK, IK, AK).
- **Key derivation** (`ranstack.keygen`): the 5G key hierarchy of TS 33.501, Annex A.
  - `generate_challenge(k, opc, serving_network_name, sqn, rand=None)` returns a
    `Challenge` holding RAND, AUTN, XRES* and KSEAF. RAND is drawn at random
    unless one is given.
  - `derive_kamf(kseaf, imsi)` derives KAMF from KSEAF.
  - `derive_kgnb(kamf, uplink_nas_count)` derives KgNB from KAMF.
  - `derive_krrcint(kgnb)` and `derive_knasint(kamf)` derive the NIA2 integrity keys.
  - Inputs of the wrong length raise `ValueError`.
- **Integrity protection** (`ranstack.nia2`): `calculate_nia2_mac` computes the
  4-byte 128-NIA2 (AES-CMAC) MAC over COUNT, bearer, direction and message.
- **Common information elements** (`ranstack.ies`): `Criticality`,
  `TransportLayerAddress`, `GtpTeid`, `GtpTunnel`, `PduSessionId` and `Snssai`,
  as validated frozen dataclasses. `TransportLayerAddress.from_ip` and `to_ip`
  convert to and from IPv4 or IPv6 addresses; `str()` of an address that is
  neither gives `"invalid"`. `str()` of a `GtpTeid` is its value in hex.
- **Transactions** (`ranstack.transaction`): `Procedure`, `Indication`,
  `RequestProvider`, `IndicationHandler`, `InterfaceProvider`, `ShutdownHandle`,
  and the exceptions `RequestError` and `UnsuccessfulOutcome`.
- **Associations** (`ranstack.tnla`): `TnlaEvent` (`established` / `terminated`),
  the `TnlaEventHandler` and `TransportProvider` interfaces, and `Binding`.
- **SCTP** (`ranstack.sctp`): `SctpAssociation` and `Listener` over the kernel's
  SCTP sockets, with `SctpError` raised when a socket operation fails.
- **Transport** (`ranstack.tnla_pool`, `ranstack.transport`): `SctpTnlaPool`
  keeps the associations that are up; `SctpTransportProvider` connects, listens,
  sends, and picks UE bindings by seed, association or remote IP.
- **Stack** (`ranstack.stack`): `Stack` sends requests and waits for the
  matching responses, sends indications, and passes incoming requests to an
  `Application`. When an association terminates, every pending request fails
  with `RequestError`.

## Installation

```
pip install .
```

SCTP transport needs a Linux kernel with SCTP support.

## Examples

### Deriving keys

```python
from ranstack.keygen import generate_challenge, derive_kamf, derive_kgnb, derive_krrcint

k = bytes(16)
opc = bytes(16)
challenge = generate_challenge(k, opc, b"5G:mnc001.mcc001.3gppnetwork.org", bytes(6))
kamf = derive_kamf(challenge.kseaf, b"001010000000001")
kgnb = derive_kgnb(kamf, 0)
krrcint = derive_krrcint(kgnb)
```

### Computing a NIA2 MAC

```python
from ranstack.nia2 import calculate_nia2_mac

mac = calculate_nia2_mac(krrcint, bytes(4), 1, 0, b"payload")
```

### Running a stack

```python
from ranstack.transport import SctpTransportProvider
from ranstack.stack import Stack

stack = Stack(SctpTransportProvider())
handle = await stack.listen("127.0.0.1:38472", 62, application, logger)
...
await handle.graceful_shutdown()
await stack.graceful_shutdown()
```

## What it does not do

- There is no ASN.1 PER codec. The IEs are plain Python values, and an
  `InterfaceProvider` or `Procedure` must supply its own encoding and decoding.
- `Stack.request` waits for a response with no timeout; it returns only when a
  matching response arrives or the association terminates.
- There is no command-line program; the package is a library.

## Running the tests

```
pip install .[test]
pytest
```