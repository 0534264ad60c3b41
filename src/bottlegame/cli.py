from __future__ import annotations

from typing import Optional

from bottlegame.config import RAW_MATERIALS, EngineConfig
from bottlegame.driver import run_loop
from bottlegame.engine import material_unit_cost
from bottlegame.intents import IntentResult
from bottlegame.models import TickResult
from bottlegame.prestige import preview_reset
from bottlegame.reporting import format_money, print_market, print_month_recap, print_offline, print_status, print_tick
from bottlegame.session import GameSession
from bottlegame.storage import ledger_path, state_path


def _input_int(prompt: str, default: Optional[int] = None) -> Optional[int]:
    s = input(prompt).strip()
    if not s:
        return default
    try:
        return int(s)
    except ValueError:
        print("Invalid input: enter a whole number.")
        return None


def _input_float(prompt: str, default: Optional[float] = None) -> Optional[float]:
    s = input(prompt).strip()
    if not s:
        return default
    try:
        return float(s)
    except ValueError:
        print("Invalid input: enter a number.")
        return None


def _show(res: IntentResult) -> None:
    print(("OK: " if res.ok else "Rejected: ") + res.message)


def _cmd_advance(session: GameSession) -> None:
    hours = _input_int("Hours to simulate [1]: ", 1)
    if hours is None or hours <= 0:
        return
    results = session.run(min(hours, session.cfg.max_offline_ticks))
    for r in results[-min(len(results), 6):]:
        print_tick(r)
    for r in results:
        if r.month_recap is not None:
            print_month_recap(r.month_recap)


def _cmd_buy_materials(session: GameSession) -> None:
    for i, kind in enumerate(RAW_MATERIALS, start=1):
        print(f"{i}) {kind} ({format_money(material_unit_cost(session.state, kind))} each, "
              f"have {session.state.inventory.raw(kind)})")
    print(f"{len(RAW_MATERIALS) + 1}) one set of each")
    pick = _input_int("Material: ")
    if pick is None:
        return
    qty = _input_int("Quantity [100]: ", 100)
    if qty is None:
        return
    if pick == len(RAW_MATERIALS) + 1:
        for kind in RAW_MATERIALS:
            _show(session.buy_materials(kind, qty))
    elif 1 <= pick <= len(RAW_MATERIALS):
        _show(session.buy_materials(RAW_MATERIALS[pick - 1], qty))
    else:
        print("Invalid choice.")


def _cmd_products(session: GameSession) -> None:
    st = session.state
    print("1) Switch flavor  2) Set price  3) Bottle format")
    choice = input("Choose: ").strip()
    if choice == "1":
        for fid, fs in st.flavors.items():
            fdef = session.catalog.flavors[fid]
            lock = "" if fs.unlocked else f" (locked until {format_money(fdef.unlock_revenue)} revenue)"
            print(f"- {fid}: {fdef.name} {format_money(fs.price)}{lock}")
        fid = input("Flavor id: ").strip()
        if fid:
            _show(session.set_flavor(fid))
    elif choice == "2":
        price = _input_float(f"New price for {st.active_flavor_id} [{st.active_price(0.0):.2f}]: ")
        if price is not None:
            _show(session.set_price(price))
    elif choice == "3":
        for fmt in session.catalog.bottle_formats.values():
            mark = "*" if fmt.format_id == st.bottle_format else " "
            print(f"{mark} {fmt.format_id}: {fmt.label} (price x{fmt.price_multiplier}, "
                  f"speed x{fmt.capacity_multiplier}) {fmt.note}")
        fmt_id = input("Format id: ").strip()
        if fmt_id:
            _show(session.set_bottle_format(fmt_id))


def _cmd_upgrades(session: GameSession) -> None:
    owned = session.state.purchased_upgrades
    for u in session.catalog.upgrades.values():
        if u.upgrade_id in owned:
            tag = "owned"
        elif any(r not in owned for r in u.requires):
            tag = "needs " + ", ".join(u.requires)
        else:
            tag = format_money(u.cost)
        print(f"- {u.upgrade_id}: {u.name} [{tag}] {u.desc}")
    uid = input("Upgrade id (blank to cancel): ").strip()
    if uid:
        _show(session.buy_upgrade(uid))


def _cmd_equipment(session: GameSession) -> None:
    owned = session.state.owned_equipment
    for group in ("production", "promo"):
        print(f"[{group}]")
        for e in session.catalog.equipment.values():
            if e.group != group:
                continue
            tag = "installed" if e.equipment_id in owned else format_money(e.cost)
            print(f"- {e.equipment_id}: {e.name} [{tag}] {e.desc}")
    print(f"Spent on equipment so far: {format_money(session.state.equipment_spent)}")
    eid = input("Equipment id (blank to cancel): ").strip()
    if eid:
        _show(session.buy_equipment(eid))


def _cmd_missions(session: GameSession) -> None:
    ms = session.state.mission
    if ms.pending_reward is not None:
        r = ms.pending_reward
        if input(f"Claim {format_money(r.cash)} + {r.prestige_points:.2f} legacy? [Y/n]: ").strip().lower() != "n":
            _show(session.claim_reward())
        return
    if ms.active_id:
        print(f"Mission {ms.active_id} is running ({ms.remaining_hours}h left).")
        return
    for m in session.catalog.missions.values():
        print(f"- {m.mission_id}: {m.name} ({m.duration_hours}h, {m.bottles_required} bottles) "
              f"-> {format_money(m.reward_cash)} + {m.reward_prestige:.2f} legacy")
    mid = input("Mission id (blank to cancel): ").strip()
    if mid:
        _show(session.start_mission(mid))


def _cmd_prestige_nodes(session: GameSession) -> None:
    st = session.state
    print(f"Legacy points available: {st.available_prestige_points()}")
    for n in session.catalog.prestige_nodes.values():
        tag = "unlocked" if n.node_id in st.unlocked_prestige_nodes else f"{n.cost} pt"
        print(f"- {n.node_id}: {n.name} [{tag}] {n.desc}")
    nid = input("Perk id (blank to cancel): ").strip()
    if nid:
        _show(session.buy_prestige_node(nid))


def _cmd_prestige(session: GameSession) -> None:
    pv = preview_reset(session.state, session.cfg)
    if not pv["eligible"]:
        print(f"Prestige unlocks at {format_money(float(pv['threshold']))} lifetime revenue.")
        return
    print(f"Relaunch with legacy {float(pv['prestige_currency_after']):.2f}: cash {format_money(float(pv['cash']))}, "
          f"capacity {int(float(pv['capacity_per_hour']))}/h, demand x{float(pv['demand_modifier']):.2f}.")
    if input("Type YES to reset this run: ").strip() == "YES":
        _show(session.prestige())
        _autosave(session)


def _cmd_log(session: GameSession) -> None:
    entries = session.log.entries(15)
    if not entries:
        print("No messages yet.")
    for e in entries:
        print(f"[day {e.day} {e.hour:02d}:00] ({e.severity}) {e.message}")


def _cmd_live(session: GameSession) -> None:
    def render(_: GameSession, result: TickResult) -> None:
        print_tick(result)
        if result.month_recap is not None:
            print_month_recap(result.month_recap)

    print(f"Running live, one hour every {session.cfg.tick_seconds:g}s. Ctrl+C to stop.")
    try:
        run_loop(session, render=render)
    except KeyboardInterrupt:
        print("\nStopped.")


def _autosave(session: GameSession) -> None:
    if not session.save():
        print("Save failed; see log output.")


def main(cfg: Optional[EngineConfig] = None) -> int:
    session = GameSession.open(state_path(), ledger_path(), cfg=cfg)
    print_offline(session.catch_up())
    _autosave(session)

    print("Bottle Tycoon (CLI)")
    print("Run the line, price against rivals, relaunch the brand for legacy.\n")

    while True:
        print_status(session.state, session.catalog, session.extensions)
        print("1) Advance hours")
        print("2) Buy raw materials")
        print("3) Toggle auto procurement")
        print("4) Flavor / price / bottle format")
        print("5) Upgrades")
        print("6) Equipment")
        print("7) Missions")
        print("8) Legacy perks")
        print("9) Prestige relaunch")
        print("10) Market report")
        print("11) Recent messages")
        print("12) Run live")
        print("13) Save")
        print("14) Hard reset")
        print("0) Quit")

        try:
            choice = input("Choose: ").strip()
        except (EOFError, KeyboardInterrupt):
            _autosave(session)
            print("\nBye.")
            return 0

        if choice == "1":
            _cmd_advance(session)
            _autosave(session)
        elif choice == "2":
            _cmd_buy_materials(session)
            _autosave(session)
        elif choice == "3":
            _show(session.set_auto_buy(not session.state.auto_buy))
            _autosave(session)
        elif choice == "4":
            _cmd_products(session)
            _autosave(session)
        elif choice == "5":
            _cmd_upgrades(session)
            _autosave(session)
        elif choice == "6":
            _cmd_equipment(session)
            _autosave(session)
        elif choice == "7":
            _cmd_missions(session)
            _autosave(session)
        elif choice == "8":
            _cmd_prestige_nodes(session)
            _autosave(session)
        elif choice == "9":
            _cmd_prestige(session)
        elif choice == "10":
            print_market(session.state, session.catalog, session.cfg)
        elif choice == "11":
            _cmd_log(session)
        elif choice == "12":
            _cmd_live(session)
            _autosave(session)
        elif choice == "13":
            _autosave(session)
        elif choice == "14":
            if input("Type WIPE to delete the save and ledger: ").strip() == "WIPE":
                session.hard_reset()
                _autosave(session)
        elif choice == "0":
            _autosave(session)
            print("Bye.")
            return 0
        else:
            print("Invalid choice: enter 0-14.")
