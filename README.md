# mdbcashless

A software model of a cashless payment reader that talks to a vending machine
controller (VMC) over the MDB bus, together with the line-based uplink console
used to drive it. Everything runs in memory: serial ports, timer, EEPROM and
I/O pins are simulated.

## What is in the package

- `mdbcashless.usart` – ring-buffered serial ports (`Usart`, `RingBuffer`).
  In 9-bit mode each MDB word is stored as two bytes (ninth bit, then data);
  `Usart.send_mdb` and `Usart.recv_mdb` move whole words,
  `Usart.receive_byte` feeds a character arriving on the line and
  `Usart.transmit_next` takes the next queued character off. Reading an empty
  buffer raises `BufferEmpty`, writing a full one raises `BufferFull`.
- `mdbcashless.clock` – a wrapping 32-bit millisecond counter (`MillisClock`)
  advanced by `tick`, plus `timer_settings` for prescaler and compare values.
- `mdbcashless.vendstate` – an emulated EEPROM (`Eeprom`, erased bytes read
  `0xFF`) and `VendStateStore`, which keeps the last vend outcome
  (`VendState.DEFAULT`, `SUCCESS`, `FAILURE`) at EEPROM address 64.
- `mdbcashless.pins` – the transmit-line switch on port B (`TxSwitch`) and
  active-low push buttons on port C (`PushButtons`).
- `mdbcashless.mdb_types` – MDB states, commands and poll replies, the
  reader configuration (`CashlessConfig`) and the shared `MdbContext`.
- `mdbcashless.device` – the MDB state machine (`MdbDevice`) handling RESET,
  SETUP (including the stage-3 identification exchange), POLL, VEND and
  READER commands; `mdbcashless.poll` and `mdbcashless.vend` hold the POLL
  and VEND handlers.
- `mdbcashless.uplink` – the text command console (`Uplink`) and the timed
  vend sequence started by `invokevend`.
- `mdbcashless.app` – the main loop (`Firmware`) tying it all together, and
  the `mdbcashless` command.

## Installing

```
pip install .
```

## The command

```
mdbcashless [--ms-per-step N] [--settle N]
```

Boots the simulated device, then reads lines from standard input. Each line
is typed into the uplink port character by character, followed by a
carriage return; after each character and for `--settle` further passes
(default 50) the main loop runs once and the clock advances by
`--ms-per-step` milliseconds (default 1). Everything the device writes to
the uplink port is printed to standard output.

## Uplink commands

Command names are matched without regard to case.

| Command | Effect |
| --- | --- |
| `reset` | restart the device |
| `help` | list commands |
| `info` | show VMC configuration and price range received during setup |
| `mdb-state` | show the current MDB state |
| `start-session <funds>` | begin a session with the given funds (state must be ENABLED) |
| `approve-vend <amount>` | approve the pending vend (state must be VEND) |
| `deny-vend` | deny the pending vend (state must be VEND) |
| `cancel-session` | ask the VMC to cancel the session (state must be SESSION IDLE) |
| `io <pin><state>` | drive pin 12: `io 1200` off, `io 1201` on |
| `invokevend <value> <transaction> <method>` | start the timed vend sequence |

While the vend timer runs, the main loop reports `5s Passed` every 1000 ms
and `Uplink.time_handler` takes the action for that period: start the
session, approve the vend, report success or failure and finally reset.

## Using it from Python

```python
from mdbcashless.app import Firmware
from mdbcashless.vendstate import Eeprom

firmware = Firmware(Eeprom(4096))
firmware.boot()

# The VMC sends RESET: the command word 0x110, then its checksum 0x010.
firmware.mdb_port.receive_byte(0x10, 1)
firmware.mdb_port.receive_byte(0x10, 0)
firmware.run(2)

print(firmware.mdb_wire)                          # [256]: the ACK word 0x100
print("".join(map(chr, firmware.console)))        # uplink output so far
```

`Firmware.console`, `Firmware.mdb_wire` and `Firmware.aux_wire` collect what
the device transmits on its three ports. A restart requested by a command
rebuilds the device and counts in `Firmware.resets`; the EEPROM keeps its
contents across it. `Firmware.run()` without an argument loops forever.

## What it does not do

- It does not open real serial ports or touch hardware pins; all I/O goes
  through the in-memory ports and registers described above.
- The `mdbcashless` command feeds only the uplink console. No vending
  machine is simulated on the MDB side, so from the command line the device
  stays INACTIVE; MDB traffic has to be fed from Python with
  `firmware.mdb_port.receive_byte`.

## Tests

```
pip install .[test]
pytest
```