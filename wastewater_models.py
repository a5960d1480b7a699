import itertools
import logging
import math

from wastewater_quality import WaterParameter as WP, WaterSample

logger = logging.getLogger(__name__)

# --- Default Retention Attributes ---
DEFAULT_VOLUME = 1000.0      # m³
DEFAULT_FLOW_RATE = 100.0    # m³/day
DEFAULT_HRT = 10.0           # hours
DEFAULT_SRT = 20.0           # days
DEFAULT_TEMPERATURE = 20.0   # °C

# --- Biological Kinetics Constants ---
THETA = 1.035                # Arrhenius temperature coefficient
REFERENCE_TEMP = 20.0        # °C
NITRATE_YIELD = 0.9          # mg NO3 formed per mg NH4 removed
OXYGEN_PER_NH4 = 4.57        # mg O2 per mg NH4 nitrified
OXYGEN_DEMAND_FACTOR = 1.5


class UnknownUnitTypeError(ValueError):
    """Raised when a unit type name is not in the registry."""


# --- Rule Steps ---
# Each step reads the inlet value of one parameter and writes the outlet value.
def remove(parameter, fraction):
    return ('remove', parameter, fraction)

def scale(parameter, factor):
    return ('scale', parameter, factor)

def shift(parameter, delta):
    return ('shift', parameter, delta)

def fix(parameter, value):
    return ('fix', parameter, value)


def apply_steps(steps, inlet, outlet):
    """Applies fixed rule steps; every step reads `inlet` and writes `outlet`."""
    for op, parameter, amount in steps:
        value = inlet.get(parameter)
        if op == 'remove':
            outlet.set(parameter, value * (1 - amount))
        elif op == 'scale':
            outlet.set(parameter, value * amount)
        elif op == 'shift':
            outlet.set(parameter, value + amount)
        elif op == 'fix':
            outlet.set(parameter, amount)
        else:
            raise ValueError(f"Unknown rule step '{op}'")
    return outlet


def _positive(name, value):
    value = float(value)
    if not value > 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


class ProcessUnit:
    """
    Base class for every element of the treatment train.

    A unit transforms the water sitting at its inlet into the water leaving its
    outlet. The default transformation is a passthrough; treatment units
    override `treat`, which must only read the sample it is given.
    """
    name = "Process Unit"
    description = ""
    _uids = itertools.count(1)

    def __init__(self, volume=DEFAULT_VOLUME, flow_rate=DEFAULT_FLOW_RATE, hrt=DEFAULT_HRT,
                 srt=DEFAULT_SRT, temperature=DEFAULT_TEMPERATURE):
        self.volume = volume
        self.flow_rate = flow_rate
        self.hrt = hrt
        self.srt = srt
        self.temperature = float(temperature)
        self.inlet_water = WaterSample()
        self.outlet_water = WaterSample()
        self.removal_efficiencies = {}
        self.uid = next(ProcessUnit._uids)

    # --- Retention attributes (must stay positive) ---
    @property
    def volume(self):
        return self._volume

    @volume.setter
    def volume(self, value):
        self._volume = _positive('volume', value)

    @property
    def flow_rate(self):
        return self._flow_rate

    @flow_rate.setter
    def flow_rate(self, value):
        self._flow_rate = _positive('flow_rate', value)

    @property
    def hrt(self):
        return self._hrt

    @hrt.setter
    def hrt(self, value):
        self._hrt = _positive('hrt', value)

    @property
    def srt(self):
        return self._srt

    @srt.setter
    def srt(self, value):
        self._srt = _positive('srt', value)

    def treat(self, inlet):
        return inlet.copy()

    def simulate(self, dt):
        """Recomputes the outlet sample from the current inlet sample."""
        self.outlet_water = self.treat(self.inlet_water)

    # --- Manual removal-efficiency annotations ---
    def add_removal_efficiency(self, parameter, efficiency):
        efficiency = float(efficiency)
        if not 0.0 <= efficiency <= 1.0:
            raise ValueError(f"Removal efficiency must be within [0, 1], got {efficiency}")
        self.removal_efficiencies[WP.lookup(parameter)] = efficiency

    def remove_removal_efficiency(self, parameter):
        self.removal_efficiencies.pop(WP.lookup(parameter), None)

    def __repr__(self):
        return f"<{type(self).__name__} '{self.name}'>"


class Inlet(ProcessUnit):
    """Entry point of the train; the driver writes the influent into its outlet."""
    name = "Inlet"
    description = "Entry point of wastewater into the system."

    def simulate(self, dt):
        pass


class Outlet(ProcessUnit):
    name = "Outlet"
    description = "Exit point of treated water from the system."


class FixedRemovalUnit(ProcessUnit):
    """A unit whose outlet follows from its inlet through fixed rule steps."""
    steps = ()

    def treat(self, inlet):
        return apply_steps(self.steps, inlet, inlet.copy())


class BiologicalUnit(ProcessUnit):
    """
    First-order biological treatment with Arrhenius temperature correction.

    For every substrate with a rate constant k the removed load is
    ``C_in * (1 - exp(-k * HRT * theta**(T - 20)))``. Nitrified ammonium shows
    up as nitrate, and the oxygen demand of everything removed is taken from
    the dissolved oxygen, which never drops below zero.
    """
    rate_constants = {}
    consumes_oxygen = True
    alkalinity_consumption = 0.0
    steps = ()

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        for parameter, k in self.rate_constants.items():
            _positive(f"rate constant for {parameter.name}", k)

    def temperature_factor(self, inlet):
        return THETA ** (inlet.get(WP.TEMP) - REFERENCE_TEMP)

    def removed(self, inlet, parameter, temp_factor):
        k = self.rate_constants.get(parameter)
        if k is None:
            return 0.0
        return inlet.get(parameter) * (1 - math.exp(-k * self.hrt * temp_factor))

    def treat(self, inlet):
        outlet = inlet.copy()
        temp_factor = self.temperature_factor(inlet)
        bod_removed = self.removed(inlet, WP.BOD, temp_factor)
        cod_removed = self.removed(inlet, WP.COD, temp_factor)
        nh4_removed = self.removed(inlet, WP.NH4, temp_factor)

        outlet.set(WP.BOD, inlet.get(WP.BOD) - bod_removed)
        outlet.set(WP.COD, inlet.get(WP.COD) - cod_removed)
        outlet.set(WP.NH4, inlet.get(WP.NH4) - nh4_removed)
        outlet.set(WP.NO3, inlet.get(WP.NO3) + nh4_removed * NITRATE_YIELD)

        if self.consumes_oxygen:
            do_consumed = (bod_removed + cod_removed + nh4_removed * OXYGEN_PER_NH4) * OXYGEN_DEMAND_FACTOR
            do_out = inlet.get(WP.DO) - do_consumed
            if do_out < 0:
                logger.debug("%s: oxygen demand %.2f exceeds supply, DO clamped to 0", self.name, do_consumed)
                do_out = 0.0
            outlet.set(WP.DO, do_out)
        if self.alkalinity_consumption:
            outlet.set(WP.ALKALINITY, inlet.get(WP.ALKALINITY) - self.alkalinity_consumption)
        return apply_steps(self.steps, inlet, outlet)


# --- Physical Separation ---
class PrimaryClarifier(FixedRemovalUnit):
    name = "Primary Clarifier"
    description = "Removes settleable solids and oil & grease from wastewater."
    steps = (remove(WP.TSS, 0.70), remove(WP.OIL, 0.90), scale(WP.TURBIDITY, 0.8))


class PrimarySedimentationTank(FixedRemovalUnit):
    name = "Primary Sedimentation Tank"
    description = "Removes settleable solids and reduces BOD through sedimentation."
    steps = (remove(WP.TSS, 0.60), remove(WP.BOD, 0.35), remove(WP.PATHOGENS, 0.60),
             scale(WP.TURBIDITY, 0.5))


class SecondaryClarifier(FixedRemovalUnit):
    name = "Secondary Clarifier"
    description = "Settles out microbial biomass from the aeration tank."
    steps = (remove(WP.TSS, 0.85), scale(WP.TURBIDITY, 0.7))


class Filtration(FixedRemovalUnit):
    name = "Filtration"
    description = "Removes suspended solids and turbidity from wastewater."
    steps = (remove(WP.TSS, 0.80), remove(WP.TURBIDITY, 0.70))


class OilSeparator(FixedRemovalUnit):
    name = "Oil and Grease Separator"
    description = "Separates oils and greases from water by flotation mechanisms."
    steps = (remove(WP.OIL, 0.90), scale(WP.TURBIDITY, 0.9))


class MembraneFiltration(FixedRemovalUnit):
    name = "Membrane Filtration"
    description = "Removes particles, pathogens, and COD through ultrafiltration membranes."
    steps = (remove(WP.COD, 0.20), remove(WP.TSS, 0.45), remove(WP.PATHOGENS, 0.9999))


class MembraneFiltrationUnit(FixedRemovalUnit):
    name = "Membrane Filtration Unit"
    description = "Uses microfiltration or ultrafiltration membranes for fine particle removal."
    steps = (remove(WP.PATHOGENS, 0.9999), remove(WP.TSS, 0.99))


class ReverseOsmosisUnit(FixedRemovalUnit):
    name = "Reverse Osmosis Unit"
    description = "Employs semi-permeable membranes to desalinate and purify water."
    steps = (remove(WP.SALINITY, 0.95), scale(WP.EC, 0.05))


# --- Chemical Treatment ---
class CoagulationFlocculation(FixedRemovalUnit):
    name = "Coagulation and Flocculation"
    description = "Destabilizes particles for subsequent removal of COD and TSS."
    steps = (remove(WP.COD, 0.40), remove(WP.TSS, 0.60))


class ChemicalOxidation(FixedRemovalUnit):
    name = "Chemical Oxidation"
    description = "Applies strong oxidants to degrade organic pollutants and color."
    steps = (remove(WP.COD, 0.70), scale(WP.TURBIDITY, 0.8))


class PhosphorusRemovalUnit(FixedRemovalUnit):
    """Chemical precipitation; the precipitate adds twice the removed P to TSS."""
    name = "Phosphorus Removal Unit"
    description = "Eliminates phosphorus via chemical precipitation methods."
    steps = (remove(WP.P, 0.75),)
    precipitate_ratio = 2.0

    def treat(self, inlet):
        outlet = super().treat(inlet)
        p_removed = inlet.get(WP.P) - outlet.get(WP.P)
        outlet.set(WP.TSS, inlet.get(WP.TSS) + p_removed * self.precipitate_ratio)
        return outlet


class ElectrocoagulationUnit(FixedRemovalUnit):
    name = "Electrocoagulation Unit"
    description = "Removes metals and suspended solids, changes EC and pH of wastewater."
    steps = (remove(WP.METALS, 0.80), remove(WP.TSS, 0.60), shift(WP.PH, 0.5), shift(WP.EC, 200.0))


class WaterSoftener(FixedRemovalUnit):
    name = "Water Softener"
    description = "Reduces water hardness by exchanging calcium and magnesium ions for sodium ions."
    steps = (remove(WP.HARDNESS, 0.90),)


class ActivatedCarbonFilter(FixedRemovalUnit):
    name = "Activated Carbon Filter"
    description = "Adsorbs organic pollutants, enhancing taste and odor quality."
    steps = (remove(WP.COD, 0.30),)


class MetalsRemovalUnit(FixedRemovalUnit):
    name = "Metals Removal Unit"
    description = "Eliminates heavy metals to prevent toxicity in the environment."
    steps = (remove(WP.METALS, 0.85),)


# --- Disinfection ---
class ChlorineDisinfectionUnit(FixedRemovalUnit):
    name = "Chlorine Disinfection Unit"
    description = "Uses chlorine to disinfect water, killing remaining pathogens."
    # chloride rises by 46% from the dosed chlorine
    steps = (remove(WP.PATHOGENS, 0.99999), fix(WP.RESIDUAL_CHLORINE, 0.7), scale(WP.CHLORIDES, 1.46))


class UVDisinfection(FixedRemovalUnit):
    name = "UV Disinfection"
    description = "Utilizes UV radiation to inactivate pathogens without chemical additives."
    steps = (remove(WP.PATHOGENS, 0.999),)


class OzoneDisinfection(FixedRemovalUnit):
    name = "Ozone Disinfection"
    description = "Removes pathogens and oxidizes contaminants using ozone."
    steps = (remove(WP.PATHOGENS, 0.999), remove(WP.COD, 0.90), remove(WP.TSS, 0.90))


# --- Anaerobic and Sludge Handling ---
class AnaerobicFilter(FixedRemovalUnit):
    name = "Anaerobic Filter"
    description = "Employs anaerobic bacteria to degrade organic pollutants."
    steps = (remove(WP.COD, 0.65),)


class SludgeDigester(FixedRemovalUnit):
    name = "Sludge Digester"
    description = "Reduces sludge volume and stabilizes organic content anaerobically."
    steps = (remove(WP.TSS, 0.55),)


class DryingBed(FixedRemovalUnit):
    name = "Drying Bed"
    description = "Allows for dewatering of sludge through evaporation and drainage."
    steps = (remove(WP.TSS, 0.95),)


# --- Biological Treatment ---
class AnaerobicAerobicFilter(BiologicalUnit):
    name = "Anaerobic-Aerobic Filter"
    description = "Biological treatment system to remove BOD, COD, and NH₄⁺ from wastewater."
    rate_constants = {WP.BOD: 0.2, WP.COD: 0.1, WP.NH4: 0.05}


class Biofilter(BiologicalUnit):
    name = "Biofilter"
    description = "Biological treatment system to remove BOD, COD, and NH₄⁺ from wastewater."
    rate_constants = {WP.BOD: 0.2, WP.COD: 0.1, WP.NH4: 0.05}


class MembraneBioreactor(BiologicalUnit):
    name = "Membrane Bioreactor"
    description = "Membrane bioreactor, bacteria and protozoa remove contaminants."
    rate_constants = {WP.BOD: 0.1, WP.COD: 0.05, WP.NH4: 0.03}


class AerationTank(BiologicalUnit):
    name = "Aeration Tank"
    description = "Promotes microbial degradation of organic matter under aerobic conditions."
    rate_constants = {WP.BOD: 0.2, WP.NH4: 0.1}


class ActiveSludgeProcess(BiologicalUnit):
    """Aeration with sedimentation; COD leaves with the settled floc, outside the oxygen balance."""
    name = "Active Sludge Process"
    description = "Biological treatment to remove BOD, COD, and TSS through aeration and sedimentation."
    rate_constants = {WP.BOD: 0.2, WP.NH4: 0.1}
    steps = (remove(WP.COD, 0.79),)


class NitrificationTank(BiologicalUnit):
    name = "Nitrification Tank"
    description = "Biological process to convert ammonium to nitrate through nitrification."
    rate_constants = {WP.NH4: 0.1}
    consumes_oxygen = False
    alkalinity_consumption = 0.5


# --- Auxiliary Equipment ---
class Pump(ProcessUnit):
    name = "Pump"
    description = "Boosts water pressure to facilitate flow through the treatment processes."


class FlowMeter(ProcessUnit):
    name = "Flow Meter"
    description = "Monitors the flow rate of water for system control and optimization."


class HeatExchanger(FixedRemovalUnit):
    name = "Heat Exchanger"
    description = "Regulates water temperature for optimal treatment conditions."
    steps = (fix(WP.TEMP, 25.0),)


# --- Unit Registry ---
UNIT_TYPES = {cls.name: cls for cls in (
    PrimarySedimentationTank,
    PrimaryClarifier,
    AerationTank,
    SecondaryClarifier,
    ChlorineDisinfectionUnit,
    UVDisinfection,
    AnaerobicFilter,
    SludgeDigester,
    OilSeparator,
    PhosphorusRemovalUnit,
    DryingBed,
    Pump,
    FlowMeter,
    WaterSoftener,
    ActivatedCarbonFilter,
    HeatExchanger,
    MetalsRemovalUnit,
    MembraneFiltrationUnit,
    ReverseOsmosisUnit,
    CoagulationFlocculation,
    MembraneFiltration,
    ChemicalOxidation,
    ActiveSludgeProcess,
    NitrificationTank,
    Biofilter,
    Filtration,
    MembraneBioreactor,
    OzoneDisinfection,
    AnaerobicAerobicFilter,
    ElectrocoagulationUnit,
)}

UNIT_ALIASES = {
    "Nitrification Unit": NitrificationTank.name,
    "Biofilter Unit": Biofilter.name,
    "Realistic Biofilter": Biofilter.name,
    "Ozonation Unit": OzoneDisinfection.name,
    "Anaerobic-Aerobic Treatment": AnaerobicAerobicFilter.name,
    "MBR": MembraneBioreactor.name,
}


def create_unit(type_name, **attrs):
    """
    Builds a treatment unit from its registry name.

    Args:
        type_name (str): a key of UNIT_TYPES or UNIT_ALIASES.
        **attrs: retention attributes passed to the unit (hrt, volume, ...).

    Returns:
        ProcessUnit: a fresh unit with baseline inlet and outlet samples.
    """
    cls = UNIT_TYPES.get(UNIT_ALIASES.get(type_name, type_name))
    if cls is None:
        raise UnknownUnitTypeError(f"Unknown unit type '{type_name}'")
    return cls(**attrs)
