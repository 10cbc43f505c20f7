import logging

import streamlit as st

from entry_form import ENTRY_FIELDS, FormStatus, FuelEntryForm
from fuel_analytics import compute_aggregate_stats, format_stat_tiles, records_to_frame
from fuel_records import WorkflowNotFinishedError, decode_response, normalize_response
from fuel_settings import WEBHOOKS_SECTION, MissingSecretError, WebhookConfig, load_webhook_config
from webhook_client import FuelWebhookClient, WebhookError

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

st.set_page_config(page_title="Fuel Log", layout="wide", page_icon="⛽")

HISTORY_CACHE_TTL_SECONDS = 120
SYNC_FAILURE_MESSAGE = "Unable to synchronize the fuel history."
FIELD_LABELS = {
    "price": "Total Price",
    "volume_liters": "Volume (L)",
    "distance_km": "Distance (km)",
}
FIELD_PLACEHOLDERS = {
    "price": "0.00",
    "volume_liters": "0.00",
    "distance_km": "0",
}


@st.cache_resource
def get_webhook_client(submit_url: str, fetch_url: str, timeout_seconds: float) -> FuelWebhookClient:
    config = WebhookConfig(
        submit_url=submit_url, fetch_url=fetch_url, timeout_seconds=timeout_seconds
    )
    return FuelWebhookClient(config)


@st.cache_data(ttl=HISTORY_CACHE_TTL_SECONDS, show_spinner=False)
def load_raw_history(submit_url: str, fetch_url: str, timeout_seconds: float, refresh_token: int):
    # refresh_token only keys the cache: a successful submission bumps it.
    client = get_webhook_client(submit_url, fetch_url, timeout_seconds)
    return client.fetch_history()


def require_webhook_client():
    """
    Validate secrets and return the shared webhook client.

    Call this only after the page has begun rendering so secrets problems are
    reported in the UI instead of preventing it from loading.
    """

    config = load_webhook_config(st.secrets)
    client = get_webhook_client(config.submit_url, config.fetch_url, config.timeout_seconds)
    return client


def request_refresh() -> None:
    st.session_state["refresh_token"] = st.session_state.get("refresh_token", 0) + 1


def get_entry_form() -> FuelEntryForm:
    if "entry_form" not in st.session_state:
        st.session_state["entry_form"] = FuelEntryForm(on_success=request_refresh)
    return st.session_state["entry_form"]


def _entry_key(name: str) -> str:
    return f"entry_{name}"


def handle_field_change(form: FuelEntryForm, name: str) -> None:
    key = _entry_key(name)
    if not form.update_field(name, st.session_state[key]):
        st.session_state[key] = form.display_values[name]


def handle_submit(form: FuelEntryForm, client: FuelWebhookClient) -> None:
    form.submit(client.submit_entry)

    if form.status == FormStatus.SUCCEEDED:
        for name in ENTRY_FIELDS:
            st.session_state[_entry_key(name)] = ""


def render_boot_diagnostics():
    """Display secrets visibility before any fail-fast checks."""

    boot_panel = st.sidebar.container()
    boot_panel.subheader("Boot Diagnostics")
    visible_keys = list(st.secrets.keys())
    webhooks = st.secrets.get(WEBHOOKS_SECTION) or {}
    boot_panel.write(
        {
            "visible_keys": visible_keys,
            "has_submit_url": "submit_url" in webhooks,
            "has_fetch_url": "fetch_url" in webhooks,
        }
    )

    return visible_keys


def render_entry_form(form: FuelEntryForm, client: FuelWebhookClient) -> None:
    form.expire_success()

    with st.container(border=True):
        st.subheader("✨ New Entry")
        st.caption("Price paid, volume and distance since the last fill-up.")

        for name in ENTRY_FIELDS:
            key = _entry_key(name)
            if key not in st.session_state:
                st.session_state[key] = form.display_values[name]
            st.text_input(
                FIELD_LABELS[name],
                key=key,
                placeholder=FIELD_PLACEHOLDERS[name],
                on_change=handle_field_change,
                args=(form, name),
            )

        if form.status == FormStatus.FAILED:
            st.error(form.message)
        elif form.status == FormStatus.SUCCEEDED:
            st.success(form.message)

        st.button(
            "Save",
            type="primary",
            use_container_width=True,
            disabled=form.status == FormStatus.SUBMITTING,
            on_click=handle_submit,
            args=(form, client),
        )


def render_raw_payload(raw, label: str = "Show raw response (debug)") -> None:
    with st.expander(label, expanded=False):
        decoded = decode_response(raw)
        st.caption(f"Detected shape: {decoded.shape} ({len(decoded.items)} items)")
        # st.json treats a bare str as already-serialized JSON
        st.json(raw if isinstance(raw, (dict, list)) else {"body": raw})


def render_sync_error(message: str, raw=None) -> None:
    with st.container(border=True):
        st.error(f"**Synchronization error**\n\n{message}")

        if st.button("Reconnect", type="secondary"):
            load_raw_history.clear()
            st.rerun()

        if raw is not None:
            render_raw_payload(raw, label="Show technical details")


def render_analytics(client: FuelWebhookClient) -> None:
    config = client.config
    refresh_token = st.session_state.get("refresh_token", 0)
    raw = None

    try:
        with st.spinner("Loading fuel history..."):
            raw = load_raw_history(
                config.submit_url, config.fetch_url, config.timeout_seconds, refresh_token
            )
        records = normalize_response(raw)
    except WorkflowNotFinishedError as error:
        logger.error("History webhook is misconfigured: %s", error)
        render_sync_error(str(error), raw)
        return
    except WebhookError as error:
        logger.error("Unable to load fuel history: %s", error)
        render_sync_error(SYNC_FAILURE_MESSAGE, raw)
        return

    if not records:
        st.info("No fill-up data received yet.")
        render_raw_payload(raw, label="Show received data (debug)")
        return

    stats = compute_aggregate_stats(records)
    tile_columns = st.columns(4)
    for column, (label, value) in zip(tile_columns, format_stat_tiles(stats)):
        column.metric(label, value)

    history = records_to_frame(records)

    st.markdown("---")
    st.subheader("Fuel Analytics")
    cost_column, consumption_column = st.columns(2)
    with cost_column:
        st.caption("Total cost per fill-up")
        st.area_chart(history["Total Cost"])
    with consumption_column:
        st.caption("Consumption (L/100km)")
        st.line_chart(history["Consumption (L/100km)"])

    st.caption("Price per litre")
    st.line_chart(history["Price/L"])

    st.markdown("---")
    st.subheader("History")
    st.dataframe(history, use_container_width=True)

    estimated = int(history["Estimated Date"].sum())
    if estimated:
        st.warning(f"{estimated} fill-up(s) had no date; the load time was used instead.")

    with st.expander("Debug data summary", expanded=False):
        st.write(
            {
                "shape": decode_response(raw).shape,
                "records": len(records),
                "refresh_token": refresh_token,
                "date_bounds": {
                    "first": records[0].iso_date,
                    "last": records[-1].iso_date,
                },
            }
        )


def main():
    render_boot_diagnostics()

    try:
        client = require_webhook_client()
    except MissingSecretError as error:
        st.error(error)
        st.stop()

    st.sidebar.title("⛽ Fuel Log")
    st.sidebar.caption("Fill-up entry and fuel economy dashboard.")

    diagnostics_panel = st.sidebar.container()
    diagnostics_panel.markdown("---")
    diagnostics_panel.subheader("Diagnostics")
    diagnostics_panel.write(
        {
            "submit_url": client.config.submit_url,
            "fetch_url": client.config.fetch_url,
            "timeout_seconds": client.config.timeout_seconds,
        }
    )

    if diagnostics_panel.button("Refresh data", type="secondary"):
        load_raw_history.clear()
        request_refresh()
        st.rerun()

    st.title("Fuel Log")

    form_column, analytics_column = st.columns([1, 2])
    with form_column:
        render_entry_form(get_entry_form(), client)
    with analytics_column:
        render_analytics(client)


if __name__ == "__main__":
    main()
