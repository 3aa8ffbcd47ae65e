# daqble/protocol/defs.py
from __future__ import annotations

# ---------------------------------------------------------------------------
# Inbound frame markers (ASCII letter with the high bit set)
# ---------------------------------------------------------------------------

FSR_MARKER = ord("F") | 0x80  # 0xC6
IMU_MARKER = ord("I") | 0x80  # 0xC9

FSR_FRAME_LEN = 15            # marker + u32 timestamp + 10 x u8 readings
IMU_FRAME_LEN = 7             # marker + 3 x int16 (low byte first on the wire)

FSR_READING_COUNT = 10
IMU_SCALE = 10                # raw orientation is degrees x 10

# ---------------------------------------------------------------------------
# GATT characteristics of the serial-port emulation profile
# ---------------------------------------------------------------------------

INBOUND_CHAR_UUID = "0003cdd1-0000-1000-8000-00805f9b0131"   # notify (device -> host)
OUTBOUND_CHAR_UUID = "0003cdd2-0000-1000-8000-00805f9b0131"  # write (host -> device)

# ---------------------------------------------------------------------------
# Outbound command grammar: "$" keyword ("," field)* ";"
# ---------------------------------------------------------------------------

CMD_PREFIX = "$"
CMD_SEPARATOR = ","
CMD_TERMINATOR = ";"

KW_ENABLE = "enable"
KW_DISABLE = "disable"
KW_DELAY = "delay"
KW_REALTIME = "real"
KW_SEND = "send"
KW_INFO = "info"

WRITE_RETRY_DELAY_S = 0.5


def normalize_uuid(value: object) -> str:
    """Canonical lower-case string form of a characteristic identifier."""
    return str(value).strip().lower()
