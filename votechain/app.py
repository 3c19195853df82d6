import argparse
import json
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from . import __version__
from .config import Settings
from .database import init_database
from .env import load_env
from .identity import issue_token
from .logger import get_logger
from .schema import validate_room_document
from .settlement import SettlementError, SettlementOrchestrator
from .storage import SettlementStore


def ingest_room(doc: dict, store: SettlementStore) -> dict:
    """Create a room with its candidates, votes and evaluations from an import document."""
    errors = validate_room_document(doc)
    if errors:
        return {"room_id": None, "status": "validation_error", "errors": errors}

    deadline = doc.get("voting_deadline")
    room = store.create_room(
        owner_id=doc["owner_id"],
        name=doc["name"],
        evaluation_criteria=doc["evaluation_criteria"],
        description=doc.get("description"),
        voting_deadline=datetime.fromisoformat(deadline) if deadline else None,
        status=doc.get("status") or "active",
        room_id=doc.get("id"),
    )

    votes = evaluations = 0
    for cand in doc["candidates"]:
        candidate = store.add_candidate(
            room["id"],
            cand["name"],
            description=cand.get("description"),
            candidate_id=cand.get("id"),
        )
        for user_id in cand.get("votes", []):
            if store.add_vote(candidate["id"], user_id):
                votes += 1
        for ev in cand.get("evaluations", []):
            store.upsert_evaluation(candidate["id"], ev["user_id"], ev["feedback"])
            evaluations += 1

    return {
        "room_id": room["id"],
        "status": "created",
        "candidates": len(doc["candidates"]),
        "votes": votes,
        "evaluations": evaluations,
    }


def _load_json(path_str: str) -> dict:
    input_path = Path(path_str)
    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")
    with input_path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _print_result(result) -> None:
    print(json.dumps(result.to_dict(), indent=2))


def cmd_init_db(args: argparse.Namespace, settings: Settings) -> None:
    init_database(settings.db_path)
    print(f"Database ready: {settings.db_path}")


def cmd_validate(args: argparse.Namespace, settings: Settings) -> None:
    errors = validate_room_document(_load_json(args.input))
    if errors:
        print("Invalid:")
        for e in errors:
            print(f" - {e}")
        raise SystemExit(2)
    print("Valid")


def cmd_import_room(args: argparse.Namespace, settings: Settings) -> None:
    init_database(settings.db_path)
    store = SettlementStore(settings.db_path)
    try:
        outcome = ingest_room(_load_json(args.input), store)
    finally:
        store.close()
    if outcome["status"] == "validation_error":
        print("Invalid:")
        for e in outcome["errors"]:
            print(f" - {e}")
        raise SystemExit(2)
    print(f"Room: {outcome['room_id']}")
    print(f"Candidates: {outcome['candidates']} votes={outcome['votes']} evaluations={outcome['evaluations']}")


def cmd_issue_token(args: argparse.Namespace, settings: Settings) -> None:
    init_database(settings.db_path)
    store = SettlementStore(settings.db_path)
    try:
        token = issue_token(store, args.user)
    finally:
        store.close()
    print(token)


def _run_settlement(args: argparse.Namespace, settings: Settings, resume: bool) -> None:
    orchestrator = SettlementOrchestrator.from_settings(settings)
    try:
        if resume:
            result = orchestrator.resume_settlement(args.room, args.user)
        else:
            result = orchestrator.finalize_room(args.room, args.user)
    except SettlementError as e:
        print(json.dumps({"error": e.to_dict()}, indent=2))
        raise SystemExit(1)
    finally:
        orchestrator.store.close()
        get_logger().log_metrics_summary()
    _print_result(result)


def cmd_finalize(args: argparse.Namespace, settings: Settings) -> None:
    _run_settlement(args, settings, resume=False)


def cmd_resume(args: argparse.Namespace, settings: Settings) -> None:
    _run_settlement(args, settings, resume=True)


def cmd_show(args: argparse.Namespace, settings: Settings) -> None:
    orchestrator = SettlementOrchestrator.from_settings(settings)
    try:
        result = orchestrator.get_settlement(args.room)
    finally:
        orchestrator.store.close()
    if result is None:
        print(f"Room {args.room} has not been settled.")
        return
    print(f"Winner: {result.winner.candidate_id} (score {result.winner.score}, {result.scoring})")
    print(f"  Reasoning: {result.winner.reasoning}")
    print(f"Ledger: {result.ledger.status} {result.ledger.transaction_id} on {result.ledger.network}")
    if result.ledger.error:
        print(f"  Error: {result.ledger.error}")
    print("Scores:")
    for s in result.scores:
        print(f"  {s.candidate_id}: {s.score} - {s.reasoning}")


def cmd_serve(args: argparse.Namespace, settings: Settings) -> None:
    from .server import create_app

    init_database(settings.db_path)
    app = create_app(SettlementOrchestrator.from_settings(settings))
    app.run(host=args.host, port=args.port)


def main():
    # Load .env if present (ORACLE_API_KEY, LEDGER_PRIVATE_KEY, etc.)
    load_env()
    parser = argparse.ArgumentParser(prog="votechain", description="VoteChain room settlement")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--db", help="SQLite database path (overrides VOTECHAIN_DB_PATH)")

    subparsers = parser.add_subparsers(dest="command")
    ini = subparsers.add_parser("init-db", help="Create database tables")
    ini.set_defaults(func=cmd_init_db)

    val = subparsers.add_parser("validate", help="Validate a room import JSON document")
    val.add_argument("--input", required=True, help="Path to room JSON")
    val.set_defaults(func=cmd_validate)

    imp = subparsers.add_parser("import-room", help="Create a room with candidates, votes and evaluations from JSON")
    imp.add_argument("--input", required=True, help="Path to room JSON")
    imp.set_defaults(func=cmd_import_room)

    tok = subparsers.add_parser("issue-token", help="Create a bearer token for a user")
    tok.add_argument("--user", required=True, help="User id")
    tok.set_defaults(func=cmd_issue_token)

    fin = subparsers.add_parser("finalize", help="Settle a room (owner only)")
    fin.add_argument("--room", required=True, help="Room id")
    fin.add_argument("--user", required=True, help="Calling user id (must own the room)")
    fin.set_defaults(func=cmd_finalize)

    res = subparsers.add_parser("resume", help="Finish an interrupted settlement without re-scoring")
    res.add_argument("--room", required=True, help="Room id")
    res.add_argument("--user", required=True, help="Calling user id (must own the room)")
    res.set_defaults(func=cmd_resume)

    shw = subparsers.add_parser("show", help="Show a room's settlement")
    shw.add_argument("--room", required=True, help="Room id")
    shw.set_defaults(func=cmd_show)

    srv = subparsers.add_parser("serve", help="Run the HTTP settlement endpoint")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)
    srv.set_defaults(func=cmd_serve)

    args = parser.parse_args()

    if args.version:
        print(__version__)
        return

    settings = Settings.from_env()
    get_logger().set_level(settings.log_level)
    if args.db:
        settings = replace(settings, db_path=Path(args.db))

    if hasattr(args, "func"):
        args.func(args, settings)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
