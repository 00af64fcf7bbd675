"""Write a batch of readings to a local InfluxDB server.

Generate the definition-file variant with:

    influxgen gen -i sensors.influx -o sensors.py
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Annotated

from influxgen.proto.runtime import Database
from influxgen.proto.serialization import Measurement, influx, influx_field, measurement, to_lines


@measurement(rename="climate")
@dataclass
class Climate(Measurement):
    sensor_id: Annotated[str, influx(rename="sensor")] = influx_field("tag")
    temperature: float = influx_field("field", rename="temp_c")
    humidity: float = influx_field("field")
    taken_at: datetime = influx_field("timestamp")
    calibration: int = 0


async def main() -> None:
    now = datetime.now(UTC)
    batch = [
        Climate(sensor_id="kitchen", temperature=21.5, humidity=0.41, taken_at=now),
        Climate(sensor_id="porch", temperature=8.25, humidity=0.77, taken_at=now),
    ]
    print(to_lines(batch))

    db = Database("http://localhost:8086/", "my_database")
    await db.add_data(batch, async_=True)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
