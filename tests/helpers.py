"""Constants and fakes shared by the test modules."""

import json

# Zócalo, Mexico City
CENTER = (19.4326, -99.1332)
NEAR = (19.4335, -99.1340)  # ~130 m away
DROPOFF = (19.4270, -99.1677)  # ~3.7 km away
FAR = (19.5500, -99.3000)  # ~21 km away


class FakeSocket:
    """Collects text frames sent by ``RoomManager``."""

    def __init__(self, fail: bool = False):
        self.sent: list[str] = []
        self.fail = fail

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.sent.append(data)

    def messages(self) -> list[dict]:
        return [json.loads(m) for m in self.sent]

    def events(self) -> list[str]:
        return [m["event"] for m in self.messages()]


def trip_body(pickup=CENTER, dropoff=DROPOFF, **extra) -> dict:
    body = {
        "pickupLocation": {"lat": pickup[0], "lng": pickup[1]},
        "dropoffLocation": {"lat": dropoff[0], "lng": dropoff[1]},
    }
    body.update(extra)
    return body
