"""
Query-time production/consumption grouping and net derivation.

Net readings are never stored; they are derived on request as production
minus consumption at every timestamp both types share.
"""

from collections.abc import Iterable

from meterdata.models import EnergyData, MeterType, Reading, TimeSeries

NET_IDENTIFIER = "NET"


def _by_timestamp(readings: Iterable[Reading]) -> dict:
    # First reading wins when a timestamp repeats
    indexed: dict = {}
    for reading in readings:
        indexed.setdefault(reading.timestamp, reading)
    return indexed


def derive_net_readings(production: Iterable[Reading], consumption: Iterable[Reading]) -> list[Reading]:
    """
    Derive net readings (production - consumption) for shared timestamps.

    Timestamps present in only one of the inputs produce nothing. The unit is
    taken from the production reading and the result has no type.

    Returns:
        Net readings in ascending timestamp order
    """
    production_by_ts = _by_timestamp(production)
    consumption_by_ts = _by_timestamp(consumption)

    net = []
    for ts in sorted(production_by_ts.keys() & consumption_by_ts.keys()):
        prod = production_by_ts[ts]
        cons = consumption_by_ts[ts]
        net.append(
            Reading(
                timestamp=ts,
                absolute_value=prod.absolute_value - cons.absolute_value,
                relative_value=prod.relative_value - cons.relative_value,
                unit=prod.unit,
                type=None,
                identifier=NET_IDENTIFIER,
            )
        )
    return net


def group_by_type(series: TimeSeries) -> dict[str, list[Reading]]:
    """
    Split one meter's series into production, consumption and net lists.

    Keys are only present for non-empty lists, so 'net' requires both types.
    """
    production = series.readings_of_type(MeterType.PRODUCTION)
    consumption = series.readings_of_type(MeterType.CONSUMPTION)

    grouped: dict[str, list[Reading]] = {}
    if production:
        grouped["production"] = production
    if consumption:
        grouped["consumption"] = consumption
    if production and consumption:
        net = derive_net_readings(production, consumption)
        if net:
            grouped["net"] = net
    return grouped


def group_energy_data_by_type(
    energy_data: Iterable[EnergyData], meter_id: str | None = None
) -> dict[MeterType | None, list[Reading]]:
    """
    Group the readings of stored EnergyData aggregates by type.

    PRODUCTION and CONSUMPTION are always present, possibly empty. The None
    key holds the net readings and is only present when both types exist.

    Args:
        energy_data: Aggregates to group
        meter_id: Only use aggregates of this meter when given
    """
    readings = [
        reading
        for item in energy_data
        if meter_id is None or item.meter_id == meter_id
        for reading in item.readings
    ]

    production = [r for r in readings if r.type is MeterType.PRODUCTION]
    consumption = [r for r in readings if r.type is MeterType.CONSUMPTION]

    grouped: dict[MeterType | None, list[Reading]] = {
        MeterType.PRODUCTION: production,
        MeterType.CONSUMPTION: consumption,
    }
    if production and consumption:
        grouped[None] = derive_net_readings(production, consumption)
    return grouped
