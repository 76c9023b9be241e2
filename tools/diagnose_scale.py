"""Show what a scale sends and how each line parses."""

import re
import sys
import time

from scale_lib import protocol
from scale_lib.errors import InvalidDataFormat
from scale_lib.parsing import parse_sample
from scale_lib.transport import Transport


def diagnose_scale(port="/dev/ttyUSB0", baud=protocol.DEFAULT_BAUD_RATE,
                   pattern=protocol.DEFAULT_DATA_PATTERN, seconds=5.0):
    """Print every line received for a few seconds with its parse result."""

    compiled = re.compile(pattern)

    print(f"\n=== Opening {port} at {baud} baud ===")
    transport = Transport.open(port, baud)
    print(f"Port opened: {transport.is_open}")

    try:
        print(f"\n=== Settling {protocol.SETTLE_DELAY_S}s ===")
        time.sleep(protocol.SETTLE_DELAY_S)

        print(f"\n=== Reading for {seconds}s with pattern {pattern!r} ===")
        accepted = []
        rejected = 0
        start = time.time()

        while time.time() - start < seconds:
            line = transport.readline()
            if line is None:
                continue

            try:
                sample = parse_sample(line, compiled)
            except InvalidDataFormat as e:
                rejected += 1
                print(f"RX: {line!r}  -> REJECTED ({e})")
                continue

            accepted.append(sample.value)
            print(f"RX: {line!r}  -> {sample.value} {sample.unit}")

        print(f"\nAccepted {len(accepted)} lines, rejected {rejected}")
        if accepted:
            print(f"Values: {accepted}")
        else:
            print("\n*** NO VALID READINGS ***")
            print("\nPossible reasons:")
            print("1. Wrong baud rate")
            print("2. StandardDataPattern does not match the scale's output format")
            print("3. Scale only sends on request or when stable")
    finally:
        transport.close()
        print("\nPort closed")

if __name__ == "__main__":
    port = sys.argv[1] if len(sys.argv) > 1 else "/dev/ttyUSB0"
    baud = int(sys.argv[2]) if len(sys.argv) > 2 else protocol.DEFAULT_BAUD_RATE
    pattern = sys.argv[3] if len(sys.argv) > 3 else protocol.DEFAULT_DATA_PATTERN
    diagnose_scale(port, baud, pattern)
