import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
from datetime import datetime, time as dtime

import streamlit as st
import pandas as pd
import plotly.graph_objects as go
import plotly.express as px

from planner.auth import InMemoryIdentityProvider
from planner.config import configure_logging, load_settings
from planner.domain import PRIORITIES, TAGS
from planner.pages import Workspace
from planner.services import AccountService
from planner.session import SessionContext
from planner.store import InMemoryDocumentStore
from planner.sync import SyncState
from planner.transforms import format_timestamp, priority_color, tag_color
from planner.weather import WeatherClient

st.set_page_config(page_title="Planner", layout="wide")


def run(coro):
    return asyncio.run(coro)


def show(result, success=None):
    """Render an Either returned by a service call."""
    if result.is_left():
        st.error(result.get_error()["message"])
        return False
    if success:
        st.success(success)
    return True


if "workspace" not in st.session_state:
    settings = load_settings()
    configure_logging(settings.log_level)
    store = InMemoryDocumentStore()
    session = SessionContext(InMemoryIdentityProvider())
    run(session.restore())
    weather_client = WeatherClient.from_settings(settings) if settings.weather_enabled else None
    st.session_state.settings = settings
    st.session_state.store = store
    st.session_state.session = session
    st.session_state.workspace = Workspace(store, session, settings, weather_client)
    st.session_state.accounts = AccountService(session, st.session_state.workspace.profiles)

session = st.session_state.session
workspace = st.session_state.workspace
accounts = st.session_state.accounts


def sync_status(controller):
    if controller.state is SyncState.ERROR:
        st.error("Could not load your data. Reopen the page to try again.")
        return False
    if controller.loading:
        st.info("Loading...")
        return False
    return True


if not session.signed_in:
    st.title("🗓 Planner")
    login_tab, signup_tab = st.tabs(["Login", "Sign up"])
    with login_tab:
        with st.form("login_form"):
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            c1, c2 = st.columns(2)
            if c1.form_submit_button("Login"):
                if show(run(accounts.log_in(email, password))):
                    st.rerun()
            if c2.form_submit_button("Continue with Google"):
                if show(run(accounts.log_in_with_provider("google", email))):
                    st.rerun()
    with signup_tab:
        with st.form("signup_form"):
            c1, c2 = st.columns(2)
            first_name = c1.text_input("First Name")
            last_name = c2.text_input("Last Name")
            email = st.text_input("Email", key="su_email")
            email_confirm = st.text_input("Confirm Email")
            password = st.text_input("Password", type="password", key="su_password")
            password_confirm = st.text_input("Confirm Password", type="password")
            if st.form_submit_button("Sign Up"):
                result = run(accounts.sign_up(first_name, last_name, email, email_confirm,
                                              password, password_confirm))
                if show(result):
                    st.rerun()
    st.stop()


if workspace.profile is None:
    run(workspace.load_profile())

st.sidebar.markdown("### 👤 Profile")
if workspace.display_name:
    st.sidebar.caption(f"Hello, {workspace.display_name}!")
if st.sidebar.button("Logout"):
    if show(run(accounts.log_out())):
        st.rerun()

menu = st.sidebar.radio("Menu", ["🏠 Overview", "✅ Todo", "📝 Notes", "💰 Budget", "👤 Profile"])


if menu == "🏠 Overview":
    overview = workspace.overview
    date_text, time_text = overview.clock()
    k1, k2 = st.columns(2)
    with k1:
        st.metric("Today", date_text)
        st.caption(time_text)
    with k2:
        with st.expander("📍 Location", expanded=False):
            st.session_state.latitude = st.number_input("Latitude", value=st.session_state.get("latitude", 40.71))
            st.session_state.longitude = st.number_input("Longitude", value=st.session_state.get("longitude", -74.0))
        refresh = st.button("🔄 Refresh weather")
        # read here: session state is empty on the worker thread the lookup runs on
        lat, lon = st.session_state.latitude, st.session_state.longitude
        if overview.weather is None or refresh:
            run(overview.refresh_weather(lambda: (lat, lon)))
        weather = overview.weather
        if weather.is_left():
            st.warning(weather.get_error()["message"])
        else:
            report = weather.get_or_else(None)
            st.metric(report.location, f"{report.temp_f}°F", help=report.summary)
            st.caption(f"H: {report.max_temp_f}°  L: {report.min_temp_f}°")

    st.header("📅 Calendar")
    if sync_status(overview.calendar):
        events = overview.events()
        if events:
            df = pd.DataFrame([
                {"Task": e.title, "Start": e.start, "End": e.end,
                 "Priority": e.priority, "Status": "Completed" if e.completed else "Open", "color": e.color}
                for e in events
            ])
            fig = px.timeline(df, x_start="Start", x_end="End", y="Task", color="color",
                              color_discrete_map="identity", hover_data=["Priority", "Status"])
            fig.update_yaxes(autorange="reversed")
            fig.update_layout(template="plotly_dark", margin=dict(t=30, b=10, l=10, r=10))
            st.plotly_chart(fig, use_container_width=True)
        else:
            st.info("No tasks scheduled.")

elif menu == "✅ Todo":
    page = workspace.tasks
    st.title("Todo List")
    if sync_status(page.todos):
        todos = page.todos.items
        if not todos:
            st.caption("No todos yet")
        for todo in todos:
            c1, c2, c3 = st.columns([1, 8, 1])
            with c1:
                if st.checkbox("", value=todo.completed, key=f"done_{todo.id}") != todo.completed:
                    show(run(page.service.toggle_complete(todo.id)))
                    st.rerun()
            with c2:
                label = f"~~{todo.text}~~" if todo.completed else todo.text
                st.markdown(f"{label}  \n"
                            f"<small>{format_timestamp(todo.start)} ~ {format_timestamp(todo.end)} / "
                            f"<b style='color:{priority_color(todo.priority)}'>{todo.priority}</b></small>",
                            unsafe_allow_html=True)
            with c3:
                if st.button("🗑", key=f"del_{todo.id}"):
                    show(run(page.service.delete_todo(todo.id)))
                    st.rerun()

        st.subheader("Add or edit a task")
        options = {"New task": None, **{f"{t.text} ({t.id[:6]})": t.id for t in todos}}
        choice = st.selectbox("Task", list(options))
        current = page.todos.get(options[choice]).get_or_else(None)
        with st.form("todo_form", clear_on_submit=True):
            text = st.text_input("Enter Task", value=current.text if current else "")
            c1, c2 = st.columns(2)
            start_day = c1.date_input("Start date", value=current.start.date() if current else datetime.now().date())
            start_time = c1.time_input("Start time", value=current.start.time() if current else dtime(9, 0))
            end_day = c2.date_input("End date", value=current.end.date() if current else datetime.now().date())
            end_time = c2.time_input("End time", value=current.end.time() if current else dtime(10, 0))
            priority = st.selectbox("Priority", PRIORITIES,
                                    index=PRIORITIES.index(current.priority) if current else 0)
            if st.form_submit_button("Confirm"):
                result = run(page.service.add_or_edit_todo(
                    text,
                    datetime.combine(start_day, start_time),
                    datetime.combine(end_day, end_time),
                    priority,
                    todo_id=options[choice],
                ))
                if show(result):
                    st.rerun()

elif menu == "📝 Notes":
    page = workspace.notes
    st.title("Notes")
    if sync_status(page.notes):
        page.query = st.text_input("🔎 Search notes", value=page.query)
        for note in page.visible_notes():
            with st.expander(f"{note.title}  ·  {format_timestamp(note.edit)} | {note.tag or 'No tag'}"):
                st.markdown(f"<div style='border-left:4px solid {tag_color(note.tag)};padding-left:8px'>"
                            f"{note.text}</div>", unsafe_allow_html=True)
                if st.button("Delete", key=f"del_note_{note.id}"):
                    show(run(page.service.delete_note(note.id)))
                    st.rerun()
        if not page.notes.items:
            st.caption("No notes yet!!")

        st.subheader("Write a note")
        options = {"New note": None, **{f"{n.title} ({n.id[:6]})": n.id for n in page.notes.items}}
        choice = st.selectbox("Note", list(options))
        current = page.notes.get(options[choice]).get_or_else(None)
        with st.form("note_form", clear_on_submit=True):
            title = st.text_input("Title", value=current.title if current else "")
            text = st.text_area("Text", value=current.text if current else "")
            tag = st.selectbox("Tag", TAGS, index=TAGS.index(current.tag) if current else len(TAGS) - 1,
                               format_func=lambda t: t or "None")
            if st.form_submit_button("Confirm"):
                if show(run(page.service.add_or_edit_note(title, text, tag, note_id=options[choice]))):
                    st.rerun()

elif menu == "💰 Budget":
    page = workspace.budget
    st.title("Budget")
    if not page.budget_loaded and page.budget_error is None:
        run(page.refresh_budget())
    if page.budget_error:
        st.warning(page.budget_error["message"])

    with st.form("budget_form"):
        amount = st.text_input("Weekly budget", value=str(page.weekly_budget.amount))
        if st.form_submit_button("Save budget"):
            show(run(page.set_budget(amount)), "Budget saved")

    if sync_status(page.transactions):
        summary = page.summary()
        k1, k2, k3 = st.columns(3)
        k1.metric("Weekly budget", f"${summary.budget:,.2f}")
        k2.metric("Spent", f"${summary.total_expenses:,.2f}")
        k3.metric("Remaining", f"${summary.remaining:,.2f}")
        if summary.exceeded:
            st.error("🔴 You have exceeded your weekly budget!")
        elif summary.near_threshold:
            st.warning("⚠️ You are close to your weekly budget.")

        if summary.by_category:
            df_cat = pd.DataFrame([{"Category": c, "Total": float(v)} for c, v in summary.by_category])
            fig_cat = px.pie(df_cat, values="Total", names="Category", title="Spending by Category")
            fig_cat.update_layout(height=300)
            st.plotly_chart(fig_cat, use_container_width=True)

        if page.transactions.items:
            df_tx = pd.DataFrame([{"Date": t.date.date(), "Amount": float(t.amount)} for t in page.transactions.items])
            spent = df_tx.groupby("Date")["Amount"].sum().sort_index().cumsum()
            labels = [d.strftime("%b %d") for d in spent.index]
            fig_ts = go.Figure()
            fig_ts.add_trace(go.Scatter(x=labels, y=spent.values, mode="lines+markers", name="Spent"))
            fig_ts.add_trace(go.Scatter(x=labels, y=[float(summary.budget)] * len(labels), mode="lines",
                                        name="Budget", line=dict(dash="dash")))
            fig_ts.update_layout(template="plotly_dark", margin=dict(t=30, b=10, l=10, r=10))
            st.plotly_chart(fig_ts, use_container_width=True)

        with st.form("tx_form", clear_on_submit=True):
            c1, c2, c3 = st.columns(3)
            name = c1.text_input("Name")
            tx_amount = c2.text_input("Amount")
            category = c3.text_input("Category")
            day = st.date_input("Date", value=datetime.now().date())
            if st.form_submit_button("Add Transaction"):
                result = run(page.service.add_transaction(name, tx_amount, category,
                                                          datetime.combine(day, dtime(12, 0))))
                if show(result, "✅ Transaction added!"):
                    st.rerun()

        if page.transactions.items:
            disp = pd.DataFrame([
                {"Date": t.date.strftime("%Y-%m-%d"), "Name": t.name, "Category": t.category,
                 "Amount": f"${t.amount:,.2f}"}
                for t in page.transactions.items
            ])
            st.table(disp)
            st.download_button("⬇ Download CSV", disp.to_csv(index=False), file_name="transactions.csv")
        else:
            st.info("No transactions to display.")

elif menu == "👤 Profile":
    st.title("Profile")
    profile = workspace.profile
    if profile:
        st.write(f"**{profile.full_name}**  \n{profile.email}")
    with st.form("profile_form"):
        first_name = st.text_input("First Name", value=profile.first_name if profile else "")
        last_name = st.text_input("Last Name", value=profile.last_name if profile else "")
        if st.form_submit_button("Save"):
            result = run(workspace.profiles.update_name(session.user_id, first_name, last_name, profile))
            if show(result, result.get_or_else(None)):
                run(workspace.load_profile())
