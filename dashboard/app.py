"""Endurance Race Strategy Dashboard.

Streamlit and Plotly front end over the race engine.  Shows driver
telemetry cards, a positions table, a schematic track map, AI strategy
advice and competitor notes.  A focus selector narrows telemetry and the
map to one driver; advisory requests run in a background thread.  Team
mode simulates a three-driver endurance entry; grid mode loads the latest
OpenF1 session and simulates it forward.

Launch with::

    streamlit run dashboard/app.py
"""

from __future__ import annotations

import asyncio
import math
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from typing import Awaitable, Callable

import numpy as np
import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from race_engine.advisory.advisor import ERROR_TIMEOUT, SKIP_IN_FLIGHT, StrategyAdvisor
from race_engine.advisory.client import create_client
from race_engine.config import load_config, load_team
from race_engine.core.driver import Driver, format_lap_time
from race_engine.core.events import EventKind, RaceEvent
from race_engine.core.sim_config import SimulationConfig
from race_engine.core.simulation import (
    apply_pit_plan,
    can_cancel_pit_stop,
    cancel_pit_stop,
    new_team_race,
    plan_pit_stop,
    step,
)
from race_engine.core.standings import focused_drivers, standings
from race_engine.core.state import RaceMode, RaceState
from race_engine.core.tyre import TyreCompound
from race_engine.data_ingestion.openf1_loader import TelemetryError, load_grid_race

_COMPOUND_COLOURS: dict[TyreCompound, str] = {
    TyreCompound.SOFT: "#dc2626",
    TyreCompound.MEDIUM: "#facc15",
    TyreCompound.HARD: "#f1f5f9",
    TyreCompound.INTERMEDIATE: "#22c55e",
    TyreCompound.WET: "#3b82f6",
}

_MAX_EVENT_LOG: int = 50
_POLL_INTERVAL_S: float = 0.5


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------


def _new_race(mode: RaceMode, config: SimulationConfig, session_key: str) -> None:
    """Create a fresh race in ``st.session_state``."""
    st.session_state["load_error"] = None
    state: RaceState | None = None
    if mode is RaceMode.GRID:
        try:
            state = load_grid_race(session_key, config)
        except TelemetryError as exc:
            st.session_state["load_error"] = str(exc)
    if state is None:
        state = new_team_race(load_team(), config)

    st.session_state["race_state"] = state
    st.session_state["config"] = config
    st.session_state["rng"] = np.random.default_rng(config.seed)
    st.session_state["events"] = []
    st.session_state["advisory_jobs"] = {}
    client = create_client(config.advisory_model, config.advisory_timeout_s)
    st.session_state["advisor"] = (
        StrategyAdvisor(client, config) if client is not None else None
    )


def _commit(state: RaceState) -> None:
    st.session_state["race_state"] = state


def _tick() -> list[RaceEvent]:
    result = step(
        st.session_state["race_state"],
        st.session_state["config"],
        st.session_state["rng"],
    )
    _commit(result.state)
    log: list[RaceEvent] = st.session_state["events"]
    log.extend(e for e in result.events if e.kind is not EventKind.LAP_COMPLETED)
    del log[:-_MAX_EVENT_LOG]
    return list(result.events)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _driver_card(drv: Driver, settings: dict[str, bool]) -> None:
    status = "Driving" if drv.is_driving else "Standby"
    st.markdown(
        f"<span style='color:{drv.color}'>&#9632;</span> "
        f"**{drv.name}** ({drv.short_name}) - P{drv.position} - {status}",
        unsafe_allow_html=True,
    )
    c1, c2, c3 = st.columns(3)
    if settings["show_tire_wear"]:
        c1.metric(drv.tyres.compound.label, f"{drv.tyres.wear:.0f}%", f"{drv.tyres.age_laps} laps")
        c1.progress(min(1.0, drv.tyres.wear / 100.0))
    if settings["show_fuel_level"]:
        c2.metric("Fuel", f"{drv.fuel:.0f}%")
        c2.progress(drv.fuel / 100.0)
    if settings["show_lap_times"]:
        c3.metric("Last lap", format_lap_time(drv.last_lap_time))
        c3.caption(f"Best {format_lap_time(drv.best_lap_time)}")
    st.caption(
        f"Drive time {drv.drive_time_s / 3600.0:.2f} h - pit stops {drv.pit_stops}"
        + (
            f" - planned stop lap {drv.planned_pit_stop.target_lap} "
            f"({drv.planned_pit_stop.compound.label})"
            if drv.planned_pit_stop
            else ""
        )
    )


def _lap_chart(drivers: tuple[Driver, ...]) -> go.Figure:
    fig = go.Figure()
    for drv in drivers:
        if not drv.lap_history:
            continue
        fig.add_trace(
            go.Scatter(
                x=[e.lap for e in drv.lap_history],
                y=[e.lap_time for e in drv.lap_history],
                mode="lines+markers",
                name=drv.short_name or drv.name,
                line=dict(color=drv.color),
            )
        )
    fig.update_layout(
        title="Recent lap times",
        xaxis_title="Lap",
        yaxis_title="Lap time (s)",
        height=350,
    )
    return fig


def _track_map(
    state: RaceState, config: SimulationConfig, drivers: tuple[Driver, ...]
) -> go.Figure:
    """Schematic oval with the given cars placed by race position."""
    angles = np.linspace(0.0, 2.0 * math.pi, 200)
    fig = go.Figure(
        go.Scatter(
            x=2.0 * np.cos(angles),
            y=np.sin(angles),
            mode="lines",
            line=dict(color="#64748b", width=12),
            hoverinfo="skip",
            showlegend=False,
        )
    )
    lap_fraction = (state.elapsed_s % config.base_lap_time_s) / config.base_lap_time_s
    on_track = [d for d in drivers if d.is_driving]
    for drv in on_track:
        theta = 2.0 * math.pi * (lap_fraction - 0.02 * (drv.position - 1))
        fig.add_trace(
            go.Scatter(
                x=[2.0 * math.cos(theta)],
                y=[math.sin(theta)],
                mode="markers+text",
                marker=dict(size=16, color=drv.color, line=dict(color="#000", width=1)),
                text=[drv.short_name],
                textposition="top center",
                name=drv.name,
            )
        )
    fig.update_layout(
        title=f"{state.track_name} - lap {state.current_lap}/{state.total_laps}",
        xaxis=dict(visible=False),
        yaxis=dict(visible=False, scaleanchor="x"),
        height=400,
    )
    return fig


@st.cache_resource
def _advisory_executor() -> ThreadPoolExecutor:
    return ThreadPoolExecutor(max_workers=3, thread_name_prefix="advisory")


def _submit_advisory(
    advisor: StrategyAdvisor, job: str, call: Callable[[], Awaitable[object]]
) -> None:
    """Start one advisory request in the background.

    Each request runs on a fresh event loop in a worker thread, and the
    SDK client is bound to the loop it was created on, so it is rebuilt
    before every request.  A job that is still pending is not restarted.
    """
    jobs: dict[str, Future] = st.session_state["advisory_jobs"]
    pending = jobs.get(job)
    if pending is not None and not pending.done():
        st.info(f"No new request sent: {SKIP_IN_FLIGHT}.")
        return
    config: SimulationConfig = st.session_state["config"]
    client = create_client(config.advisory_model, config.advisory_timeout_s)
    if client is not None:
        advisor.client = client
    jobs[job] = _advisory_executor().submit(lambda: asyncio.run(call()))


def _advisory_pending(job: str) -> bool:
    future: Future | None = st.session_state["advisory_jobs"].get(job)
    return future is not None and not future.done()


def _show_advisory_status(advisor: StrategyAdvisor, channel_name: str, job: str) -> None:
    """Spinner text while a job runs; afterwards its error or skip reason."""
    if _advisory_pending(job):
        st.info("Consulting strategist...")
        return
    future: Future | None = st.session_state["advisory_jobs"].get(job)
    if future is not None and future.exception() is not None:
        st.warning(f"Advisory request failed: {future.exception()}")
    channel = getattr(advisor, channel_name)
    if channel.error is not None:
        if channel.error_kind == ERROR_TIMEOUT:
            st.error(f"Timed out: {channel.error}")
        else:
            st.warning(channel.error)
    elif channel.skipped is not None and future is not None:
        st.info(f"No new request sent: {channel.skipped}.")


def _positions_table(state: RaceState) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "Pos": row.position,
                "Driver": row.name,
                "Team": row.team,
                "Last lap": row.last_lap,
                "Tyre": row.tyre,
                "Gap": row.gap,
            }
            for row in standings(state)
        ]
    )


# ---------------------------------------------------------------------------
# Streamlit app
# ---------------------------------------------------------------------------


def main() -> None:  # noqa: C901
    """Entry point for the Streamlit dashboard."""
    st.set_page_config(page_title="Endurance Race Strategist", layout="wide")
    st.title("Endurance Race Strategist")

    # ── Sidebar ──────────────────────────────────────────────────────────
    st.sidebar.header("Race")
    mode_label: str = st.sidebar.radio("Mode", ["Team (24h)", "Grid (OpenF1)"])
    mode = RaceMode.TEAM if mode_label.startswith("Team") else RaceMode.GRID
    session_key: str = st.sidebar.text_input("OpenF1 session key", value="latest")
    seed: int = int(st.sidebar.number_input("Seed", value=2024, step=1))
    speed: float = st.sidebar.slider("Speed factor", 0.5, 10.0, 1.0, 0.5)

    st.sidebar.header("Display")
    settings = {
        "show_lap_times": st.sidebar.toggle("Show lap times", value=True),
        "show_fuel_level": st.sidebar.toggle("Show fuel level", value=True),
        "show_tire_wear": st.sidebar.toggle("Show tyre wear", value=True),
    }
    ai_level: str = st.sidebar.selectbox("AI assistance level", ["advanced", "basic"])

    if st.sidebar.button("New race") or "race_state" not in st.session_state:
        config = replace(load_config(), seed=seed, speed_factor=speed)
        _new_race(mode, config, session_key)

    running: bool = st.sidebar.toggle("Run simulation", value=False)
    if st.sidebar.button("Advance one tick"):
        for event in _tick():
            if event.severity == "warning" or event.kind is EventKind.RACE_FINISHED:
                st.toast(event.message)

    if st.session_state.get("load_error"):
        st.error(
            f"Could not load telemetry: {st.session_state['load_error']}. "
            "Running the team simulation instead."
        )

    state: RaceState = st.session_state["race_state"]
    config: SimulationConfig = st.session_state["config"]
    advisor: StrategyAdvisor | None = st.session_state["advisor"]

    by_id = {d.driver_id: d for d in state.drivers}
    focus_id: str | None = st.sidebar.selectbox(
        "Focus",
        [None] + list(by_id),
        format_func=lambda i: "All drivers" if i is None else by_id[i].name,
    )
    focused = focused_drivers(state, focus_id)

    col_a, col_b, col_c, col_d = st.columns(4)
    col_a.metric("Lap", f"{state.current_lap}/{state.total_laps}")
    col_b.metric(
        "Race time",
        f"{state.elapsed_s / 3600.0:.2f} h",
        f"{state.remaining_s / 3600.0:.2f} h left",
    )
    col_c.metric("Weather", state.weather.value)
    col_d.metric("Safety car", state.safety_car.value)
    if state.finished:
        st.success("Race finished.")

    tab_tel, tab_pos, tab_map, tab_ai, tab_comp = st.tabs(
        ["Telemetry", "Positions", "Track map", "Strategist", "Competitors"]
    )

    # ── Telemetry ────────────────────────────────────────────────────────
    with tab_tel:
        shown = sorted(focused, key=lambda d: d.position)
        for drv in shown[:20]:
            with st.container(border=True):
                _driver_card(drv, settings)
        if settings["show_lap_times"]:
            st.plotly_chart(_lap_chart(focused), use_container_width=True)
        with st.expander("Race control log"):
            for event in reversed(st.session_state["events"]):
                st.write(f"Lap {event.lap}: {event.message}")

    # ── Positions ────────────────────────────────────────────────────────
    with tab_pos:
        st.dataframe(_positions_table(state), use_container_width=True, hide_index=True)

    # ── Track map ────────────────────────────────────────────────────────
    with tab_map:
        st.plotly_chart(_track_map(state, config, focused), use_container_width=True)

    # ── Strategist ───────────────────────────────────────────────────────
    with tab_ai:
        on_track = [d for d in state.drivers if d.is_driving]
        if on_track:
            st.subheader("Plan a pit stop")
            target = on_track[0] if state.mode is RaceMode.TEAM else st.selectbox(
                "Driver", on_track, format_func=lambda d: d.name
            )
            compound: TyreCompound = st.selectbox(
                "Compound", list(TyreCompound), format_func=lambda c: c.label
            )
            laps_ahead = int(st.number_input("Laps from now", min_value=1, value=10))
            c1, c2 = st.columns(2)
            if c1.button("Plan stop"):
                try:
                    _commit(
                        plan_pit_stop(
                            state, target.driver_id, state.current_lap + laps_ahead, compound
                        )
                    )
                except ValueError as exc:
                    st.warning(str(exc))
            if target.planned_pit_stop is not None:
                locked = not can_cancel_pit_stop(state, target)
                label = "Cannot cancel (pit approaching)" if locked else "Cancel stop"
                if c2.button(label, disabled=locked):
                    try:
                        _commit(cancel_pit_stop(state, target.driver_id))
                    except ValueError as exc:
                        st.warning(str(exc))

        st.subheader("AI strategist")
        if advisor is None:
            st.info("Set ANTHROPIC_API_KEY to enable AI strategy advice.")
        else:
            channel_name = "team" if state.mode is RaceMode.TEAM else "pit"
            if st.button("Ask strategist"):
                request = (
                    advisor.request_team_strategy
                    if state.mode is RaceMode.TEAM
                    else advisor.request_pit_stop
                )
                _submit_advisory(advisor, "strategist", lambda: request(state))
            _show_advisory_status(advisor, channel_name, "strategist")
            channel = getattr(advisor, channel_name)
            advice = channel.result
            if advice is not None:
                st.markdown(f"**Suggested action:** {advice.suggested_action}")
                if ai_level == "advanced":
                    st.markdown(f"**Reasoning:** {advice.reasoning}")
                if advice.next_pit_lap:
                    st.write(f"Next optimal pit lap: {advice.next_pit_lap}")
                if advice.recommended_next_driver:
                    st.write(f"Recommended next driver: {advice.recommended_next_driver}")
                if advice.plan is not None and st.button(
                    f"Apply plan: {advice.plan.compound.label} on lap {advice.plan.target_lap}"
                ):
                    try:
                        _commit(apply_pit_plan(state, advice.plan))
                    except (KeyError, ValueError) as exc:
                        st.warning(f"Plan could not be applied: {exc}")

    # ── Competitors ──────────────────────────────────────────────────────
    with tab_comp:
        if advisor is None:
            st.info("Set ANTHROPIC_API_KEY to enable competitor analysis.")
        else:
            rival: Driver = st.selectbox(
                "Competitor", list(state.drivers), format_func=lambda d: d.name
            )
            history: str = st.text_area("Historical notes", value="")
            if st.button("Analyse competitor"):
                _submit_advisory(
                    advisor,
                    "competitor",
                    lambda: advisor.request_competitor_analysis(
                        state, rival.driver_id, history
                    ),
                )
            _show_advisory_status(advisor, "competitor", "competitor")
            analysis = advisor.competitor.result
            if analysis is not None:
                st.write(analysis.strategy_summary)
                st.caption(
                    f"Tyres: {analysis.tire_compound.label}"
                    + (f", {analysis.tire_age_laps} laps" if analysis.tire_age_laps else "")
                )
                for label, note in (
                    ("Ahead", analysis.driver_in_front),
                    ("Behind", analysis.driver_behind),
                ):
                    if note is not None:
                        st.write(f"{label}: {note.name} {note.gap or ''} {note.action or ''}")

    # ── Loop ─────────────────────────────────────────────────────────────
    if running and not state.finished:
        time.sleep(config.tick_interval_s / max(speed, 1.0))
        for event in _tick():
            if event.severity == "warning":
                st.toast(event.message)
        st.rerun()
    elif any(not job.done() for job in st.session_state["advisory_jobs"].values()):
        time.sleep(_POLL_INTERVAL_S)
        st.rerun()


if __name__ == "__main__":
    main()
