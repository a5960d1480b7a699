import numpy as np
import pytest

from wastewater_models import AerationTank, Inlet, Outlet, PrimaryClarifier, Pump
from wastewater_quality import WaterParameter as WP, WaterSample
from wastewater_simulator import (
    DEFAULT_TRAIN, ParameterHistory, Pipeline, PipelineStructureError, SimulationConfig,
    SimulationDriver,
)


def passthrough_pipeline(n):
    pipeline = Pipeline()
    for _ in range(n):
        pipeline.add_unit("Pump")
    return pipeline


def test_new_pipeline_holds_only_terminals():
    pipeline = Pipeline()
    assert isinstance(pipeline[0], Inlet)
    assert isinstance(pipeline[-1], Outlet)
    assert len(pipeline) == 2
    assert pipeline.interior == []
    assert len(pipeline.connections) == 1


def test_add_unit_defaults_to_before_outlet():
    pipeline = Pipeline()
    first = pipeline.add_unit("Primary Clarifier")
    second = pipeline.add_unit("Aeration Tank")
    front = pipeline.add_unit(Pump(), position=1)
    assert pipeline.interior == [front, first, second]
    assert isinstance(pipeline[-1], Outlet)
    assert [(c.upstream, c.downstream) for c in pipeline.connections] == list(
        zip(pipeline.units, pipeline.units[1:]))


@pytest.mark.parametrize("position", [0, 3, -1])
def test_add_unit_rejects_out_of_range_positions(position):
    pipeline = passthrough_pipeline(1)
    with pytest.raises(PipelineStructureError):
        pipeline.add_unit("Pump", position=position)
    assert len(pipeline) == 3


def test_terminals_cannot_be_added_or_removed():
    pipeline = passthrough_pipeline(2)
    with pytest.raises(PipelineStructureError):
        pipeline.add_unit(Inlet())
    for index in (0, 3, 4, -1):
        with pytest.raises(PipelineStructureError):
            pipeline.remove_unit(index)
    assert len(pipeline) == 4


def test_remove_unit_rebuilds_connections():
    pipeline = Pipeline()
    clarifier = pipeline.add_unit("Primary Clarifier")
    pipeline.add_unit("Pump")
    removed = pipeline.remove_unit(2)
    assert isinstance(removed, Pump)
    assert pipeline.interior == [clarifier]
    assert pipeline.connections[-1].downstream is pipeline.outlet
    assert len(pipeline.connections) == 2


def test_one_unit_lag_after_inlet_edit():
    pipeline = passthrough_pipeline(3)
    pipeline.run(5)
    pipeline.influent.set(WP.BOD, 10.0)

    pipeline.advance(0.016)
    assert pipeline[1].inlet_water[WP.BOD] == 10.0
    assert pipeline[2].inlet_water[WP.BOD] == 300.0
    assert pipeline[3].inlet_water[WP.BOD] == 300.0
    assert pipeline.outlet.inlet_water[WP.BOD] == 300.0

    pipeline.advance(0.016)
    assert pipeline[2].inlet_water[WP.BOD] == 10.0
    assert pipeline.outlet.inlet_water[WP.BOD] == 300.0

    pipeline.advance(0.016)
    assert pipeline[3].inlet_water[WP.BOD] == 10.0
    assert pipeline.outlet.inlet_water[WP.BOD] == 300.0

    # the Outlet sits four positions downstream of the Inlet
    pipeline.advance(0.016)
    assert pipeline.outlet.inlet_water[WP.BOD] == 10.0
    assert pipeline.effluent[WP.BOD] == 300.0
    pipeline.advance(0.016)
    assert pipeline.effluent[WP.BOD] == 10.0


def test_treatment_reaches_outlet_after_enough_ticks():
    pipeline = Pipeline()
    pipeline.add_unit("Primary Clarifier")
    pipeline.advance(0.016)
    # the clarifier has only seen baseline water arriving at its inlet
    assert pipeline.outlet.inlet_water[WP.TSS] == pytest.approx(60.0)
    pipeline.influent.set(WP.TSS, 100)
    pipeline.run(2)
    assert pipeline.outlet.inlet_water[WP.TSS] == pytest.approx(30.0)


def test_default_example_is_deterministic():
    def trace():
        pipeline = Pipeline()
        pipeline.load_default_example()
        pipeline.influent = WaterSample(BOD=250, TEMP=15)
        rows = []
        for dt in (0.016, 0.02, 0.5, 0.016, 0.0, 0.1) * 3:
            pipeline.advance(dt)
            rows.append([unit.outlet_water.get(p) for unit in pipeline for p in WP])
        return np.array(rows)

    assert np.array_equal(trace(), trace())


def test_default_example_train():
    pipeline = Pipeline()
    pipeline.add_unit("Pump")
    pipeline.load_default_example()
    assert [unit.name for unit in pipeline.interior] == list(DEFAULT_TRAIN)
    pipeline.run(len(pipeline))
    effluent = pipeline.outlet.inlet_water
    assert effluent[WP.TSS] < 200
    assert effluent[WP.BOD] < 300
    assert effluent[WP.RESIDUAL_CHLORINE] == pytest.approx(0.7)
    assert effluent[WP.DO] >= 0.0


def test_bounded_history_keeps_latest_values():
    pipeline = Pipeline(SimulationConfig(history_capacity=5))
    pipeline.add_unit(AerationTank())
    for tick in range(10):
        pipeline.influent.set(WP.TEMP, float(tick))
        pipeline.advance(0.016)
    # each tick appends Inlet, tank and Outlet values, lagging one tick per unit
    assert pipeline.history.values(WP.TEMP) == [7.0, 6.0, 9.0, 8.0, 7.0]
    for parameter in WP:
        assert len(pipeline.history.values(parameter)) == 5


def test_history_mixes_all_units_per_parameter():
    pipeline = passthrough_pipeline(1)
    pipeline.influent.set(WP.BOD, 1.0)
    pipeline.advance(0.016)
    # Inlet, Pump and Outlet outlets in unit order
    assert pipeline.history.values(WP.BOD) == [1.0, 300.0, 300.0]
    pipeline.advance(0.016)
    assert pipeline.history.values(WP.BOD)[-3:] == [1.0, 1.0, 300.0]


def test_history_per_unit_when_configured():
    pipeline = Pipeline(SimulationConfig(history_by_unit=True, history_capacity=3))
    pipeline.add_unit(PrimaryClarifier())
    pipeline.run(4)
    assert pipeline.history.values((0, WP.TSS)) == [200.0] * 3
    assert pipeline.history.values((1, WP.TSS)) == pytest.approx([60.0] * 3)
    assert WP.TSS not in pipeline.history
    frame = pipeline.history.to_frame()
    assert "1:TSS" in frame.columns
    assert frame.shape == (3, 3 * len(WP))


def test_reset_clears_history_and_units():
    pipeline = Pipeline()
    pipeline.load_default_example()
    pipeline.run(3)
    pipeline.reset()
    assert len(pipeline) == 2
    assert len(pipeline.history) == 0
    assert pipeline.ticks == 0
    assert pipeline.elapsed == 0.0


def test_advance_rejects_negative_time_step():
    pipeline = Pipeline()
    with pytest.raises(ValueError):
        pipeline.advance(-0.1)


def test_parameter_history_fifo():
    history = ParameterHistory(capacity=3)
    for value in range(5):
        history.add_value(WP.COD, value)
    assert history.values(WP.COD) == [2.0, 3.0, 4.0]
    assert np.allclose(history.as_array(WP.COD), [2, 3, 4])
    assert history.values(WP.BOD) == []
    assert list(history.to_frame()["COD"]) == [2.0, 3.0, 4.0]
    with pytest.raises(ValueError):
        ParameterHistory(capacity=0)


def test_snapshot_lists_every_unit():
    pipeline = passthrough_pipeline(2)
    pipeline.run(1)
    frame = pipeline.snapshot()
    assert frame.shape == (4, len(WP))
    assert frame.loc["0. Inlet", WP.BOD.label] == 300.0


def test_unit_water_compares_inlet_and_outlet():
    pipeline = Pipeline()
    pipeline.add_unit("Primary Clarifier")
    pipeline.influent.set(WP.TSS, 400)
    pipeline.run(2)
    frame = pipeline.unit_water(1)
    assert list(frame.columns) == ["Inlet", "Outlet"]
    assert frame.shape == (len(WP), 2)
    assert frame.loc[WP.TSS.label, "Inlet"] == 400.0
    assert frame.loc[WP.TSS.label, "Outlet"] == pytest.approx(120.0)
    with pytest.raises(PipelineStructureError):
        pipeline.unit_water(3)


def test_config_validation():
    with pytest.raises(ValueError):
        SimulationConfig(history_capacity=0)
    with pytest.raises(ValueError):
        SimulationConfig(speed_min=2.0, speed_max=1.0)
    with pytest.raises(ValueError):
        SimulationConfig(default_speed=10.0)
    with pytest.raises(ValueError):
        SimulationConfig(time_step=0)


def test_driver_clamps_speed_and_only_ticks_when_running():
    driver = SimulationDriver()
    driver.speed = 50
    assert driver.speed == 5.0
    driver.speed = 0.0
    assert driver.speed == pytest.approx(0.1)

    assert driver.step(1.0) is False
    assert driver.pipeline.ticks == 0
    driver.start()
    driver.speed = 2.0
    assert driver.step(0.5) is True
    assert driver.pipeline.elapsed == pytest.approx(1.0)
    driver.stop()
    assert driver.step(0.5) is False
    assert driver.pipeline.ticks == 1


def test_driver_writes_influent():
    driver = SimulationDriver()
    driver.set_influent(WaterSample(BOD=10), COD=20)
    assert driver.pipeline.influent[WP.BOD] == 10.0
    assert driver.pipeline.influent[WP.COD] == 20.0
