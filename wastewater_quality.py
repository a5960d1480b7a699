from enum import Enum


class MissingParameterError(LookupError):
    """Raised when a water sample is asked for a parameter it does not hold."""


# --- Water Quality Parameters ---
class WaterParameter(Enum):
    """Measured water-quality quantities, with display labels."""
    BOD = "BOD (mg/L)"
    COD = "COD (mg/L)"
    TSS = "TSS (mg/L)"
    NH4 = "NH₄⁺ (mg/L)"
    NO3 = "NO₃⁻ (mg/L)"
    PH = "pH"
    P = "Total Phosphorus (mg/L)"
    OIL = "Oils and Greases (mg/L)"
    DO = "Dissolved Oxygen (mg/L)"
    TEMP = "Temperature (°C)"
    PATHOGENS = "Pathogens (CFU/mL)"
    SALINITY = "Salinity (ppt)"
    TURBIDITY = "Turbidity (NTU)"
    EC = "Electrical Conductivity (µS/cm)"
    ALKALINITY = "Alkalinity (mg CaCO₃/L)"
    RESIDUAL_CHLORINE = "Residual Chlorine (mg/L)"
    HARDNESS = "Total Hardness (mg CaCO₃/L)"
    SULFATES = "Sulfates (mg/L)"
    CHLORIDES = "Chlorides (mg/L)"
    METALS = "Heavy Metals (mg/L)"

    @property
    def label(self):
        return self.value

    @classmethod
    def lookup(cls, key):
        """Resolves a member or a member name (case-insensitive) to a parameter."""
        if isinstance(key, cls):
            return key
        if isinstance(key, str):
            member = cls.__members__.get(key.upper())
            if member is not None:
                return member
        raise MissingParameterError(f"Unknown water parameter: {key!r}")


# Raw municipal influent, used whenever a sample is created without values.
BASELINE_INFLUENT = {
    WaterParameter.BOD: 300.0,
    WaterParameter.COD: 600.0,
    WaterParameter.TSS: 200.0,
    WaterParameter.NH4: 50.0,
    WaterParameter.NO3: 5.0,
    WaterParameter.PH: 6.5,
    WaterParameter.P: 10.0,
    WaterParameter.OIL: 30.0,
    WaterParameter.DO: 2.0,
    WaterParameter.TEMP: 20.0,
    WaterParameter.PATHOGENS: 1e6,
    WaterParameter.SALINITY: 0.5,
    WaterParameter.TURBIDITY: 50.0,
    WaterParameter.EC: 1500.0,
    WaterParameter.ALKALINITY: 200.0,
    WaterParameter.RESIDUAL_CHLORINE: 0.0,
    WaterParameter.HARDNESS: 250.0,
    WaterParameter.SULFATES: 80.0,
    WaterParameter.CHLORIDES: 100.0,
    WaterParameter.METALS: 5.0,
}


class WaterSample:
    """
    A complete set of water-quality values, one per WaterParameter.

    Samples are values: copying yields an independent sample and `replace`
    swaps every entry at once. All twenty parameters are present from
    construction onwards, so a failed lookup means a programming error.

    Args:
        values (dict, optional): overrides for the baseline influent, keyed by
            WaterParameter or parameter name.
        **overrides: the same, as keyword arguments (e.g. ``BOD=120``).
    """
    def __init__(self, values=None, **overrides):
        self._values = dict(BASELINE_INFLUENT)
        for source in (values or {}, overrides):
            for key, value in source.items():
                self._values[WaterParameter.lookup(key)] = float(value)

    def get(self, parameter):
        key = WaterParameter.lookup(parameter)
        try:
            return self._values[key]
        except KeyError:
            raise MissingParameterError(f"Sample has no value for {key.name}") from None

    def set(self, parameter, value):
        self._values[WaterParameter.lookup(parameter)] = float(value)

    def __getitem__(self, parameter):
        return self.get(parameter)

    def __setitem__(self, parameter, value):
        self.set(parameter, value)

    def copy(self):
        clone = WaterSample.__new__(WaterSample)
        clone._values = dict(self._values)
        return clone

    def replace(self, other):
        """Replaces every value with those of `other` (no partial merge)."""
        self._values = dict(other._values)

    def as_dict(self):
        return {param.name: value for param, value in self.items()}

    def items(self):
        return ((param, self._values[param]) for param in WaterParameter)

    def __iter__(self):
        return iter(WaterParameter)

    def __len__(self):
        return len(self._values)

    def __eq__(self, other):
        if not isinstance(other, WaterSample):
            return NotImplemented
        return self._values == other._values

    def __repr__(self):
        shown = ", ".join(f"{param.name}={value:g}" for param, value in self.items())
        return f"WaterSample({shown})"
