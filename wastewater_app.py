import time

import pandas as pd
import streamlit as st

from wastewater_models import UNIT_TYPES
from wastewater_plots import create_pfd, plot_history
from wastewater_quality import WaterParameter
from wastewater_simulator import SimulationConfig, SimulationDriver

# --- Page Configuration ---
st.set_page_config(
    page_title="Wastewater Treatment Train Simulator",
    page_icon="💧",
    layout="wide"
)

# --- Session State Initialization ---
if 'driver' not in st.session_state:
    st.session_state.driver = SimulationDriver(config=SimulationConfig())
    st.session_state.last_frame = time.monotonic()

driver = st.session_state.driver
pipeline = driver.pipeline
config = driver.config

st.title("💧 Wastewater Treatment Train Simulator")

# --- Sidebar: Control Panel ---
with st.sidebar:
    st.header("Control Panel")
    col_a, col_b, col_c = st.columns(3)
    if col_a.button("Start"):
        driver.start()
        st.session_state.last_frame = time.monotonic()
    if col_b.button("Stop"):
        driver.stop()
    if col_c.button("Reset"):
        driver.stop()
        pipeline.reset()

    if st.button("Load Default Example"):
        pipeline.load_default_example()

    driver.speed = st.slider("Simulation Speed", config.speed_min, config.speed_max,
                             float(driver.speed), step=0.1)
    if st.button("Single Tick"):
        pipeline.advance(config.time_step * driver.speed)

    st.subheader("Add Component")
    new_type = st.selectbox("Type", list(UNIT_TYPES.keys()))
    position = st.number_input("Position", min_value=1, max_value=len(pipeline) - 1,
                               value=len(pipeline) - 1, step=1)
    if st.button("Add"):
        pipeline.add_unit(new_type, int(position))
        st.rerun()

    st.header("Influent")
    with st.expander("Edit Inlet Water"):
        for parameter in WaterParameter:
            value = st.number_input(parameter.label, value=float(pipeline.influent.get(parameter)),
                                    key=f"inlet_{parameter.name}", format="%.4g")
            if value != pipeline.influent.get(parameter):
                pipeline.influent.set(parameter, value)

# --- Main Panel: Treatment Train ---
st.subheader("Treatment Train")
st.graphviz_chart(create_pfd(pipeline))

for index, unit in enumerate(pipeline.interior, start=1):
    key = unit.uid
    with st.expander(f"{index}. {unit.name}"):
        st.caption(unit.description)
        cols = st.columns(5)
        volume = cols[0].number_input("Volume (m³)", min_value=0.1, value=float(unit.volume), key=f"vol_{key}")
        flow_rate = cols[1].number_input("Flow Rate (m³/day)", min_value=0.1, value=float(unit.flow_rate),
                                         key=f"flow_{key}")
        hrt = cols[2].number_input("HRT (hrs)", min_value=0.1, value=float(unit.hrt), key=f"hrt_{key}")
        srt = cols[3].number_input("SRT (days)", min_value=0.1, value=float(unit.srt), key=f"srt_{key}")
        temperature = cols[4].number_input("Temperature (°C)", value=float(unit.temperature), key=f"temp_{key}")
        unit.volume, unit.flow_rate, unit.hrt, unit.srt = volume, flow_rate, hrt, srt
        unit.temperature = temperature

        st.dataframe(pipeline.unit_water(index))

        st.markdown("**Removal Efficiencies**")
        for parameter, efficiency in list(unit.removal_efficiencies.items()):
            cols = st.columns([3, 1])
            cols[0].write(f"{parameter.label}: {efficiency:.2%}")
            if cols[1].button("Remove", key=f"rm_eff_{key}_{parameter.name}"):
                unit.remove_removal_efficiency(parameter)
                st.rerun()
        cols = st.columns([2, 1, 1])
        eff_param = cols[0].selectbox("Parameter", list(WaterParameter), format_func=lambda p: p.label,
                                      key=f"eff_param_{key}")
        eff_value = cols[1].number_input("Efficiency", 0.0, 1.0, 0.5, key=f"eff_val_{key}")
        if cols[2].button("Set", key=f"eff_set_{key}"):
            unit.add_removal_efficiency(eff_param, eff_value)
            st.rerun()

        if st.button("Remove Component", key=f"remove_{key}"):
            pipeline.remove_unit(index)
            st.rerun()

# --- Results ---
col1, col2 = st.columns([1.3, 2])
with col1:
    st.subheader("Inlet vs Outlet")
    comparison = pd.DataFrame({
        "Inlet": [pipeline.influent.get(p) for p in WaterParameter],
        "Outlet": [pipeline.outlet.inlet_water.get(p) for p in WaterParameter],
    }, index=[p.label for p in WaterParameter])
    st.dataframe(comparison)
    st.metric("Ticks", pipeline.ticks)
    st.metric("Simulated Time (s)", f"{pipeline.elapsed:.2f}")

with col2:
    st.subheader("Parameter History")
    selected = st.multiselect("Parameters", list(WaterParameter), default=[WaterParameter.BOD],
                              format_func=lambda p: p.label)
    if len(pipeline.history):
        st.pyplot(plot_history(pipeline.history, selected))
        st.download_button("Download History CSV", data=pipeline.history.to_frame().to_csv(index=False),
                           file_name="wwtp_history.csv", mime="text/csv")
    else:
        st.info("Start the simulation to record history.")

with st.expander("Unit Outlet Snapshot"):
    st.dataframe(pipeline.snapshot())

# --- Frame Loop ---
if driver.running:
    now = time.monotonic()
    driver.step(now - st.session_state.last_frame)
    st.session_state.last_frame = now
    time.sleep(config.time_step)
    st.rerun()
