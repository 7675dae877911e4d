"""Interface en ligne de commande Reconcord."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from reconcord import __version__
from reconcord.config import VALID_LOG_LEVELS, Config
from reconcord.errors import ReconcordError
from reconcord.export import build_mapping_csv
from reconcord.log import setup_logging
from reconcord.report import print_report_console
from reconcord.service import ReconcordService, error_response

DEFAULT_DATA_DIR = ".reconcord"


def _print_response(response: dict[str, Any]) -> int:
    print(json.dumps(response, indent=2, ensure_ascii=False, default=str))
    return 0 if response["status_code"] < 400 else 1


def _read_file(path: str) -> tuple[bytes, str]:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Fichier introuvable: {p}")
    return p.read_bytes(), p.name


def _load_json_arg(value: str) -> Any:
    """Accepte du JSON en ligne ou @chemin vers un fichier JSON."""
    if value.startswith("@"):
        with open(value[1:], encoding="utf-8") as f:
            return json.load(f)
    return json.loads(value)


def load_config(config_path: str | None) -> Config:
    if config_path:
        return Config.load(config_path)
    return Config(data_dir=DEFAULT_DATA_DIR)


def cmd_create(service: ReconcordService, name: str, source: str, target: str) -> int:
    """Crée un lot à partir de deux fichiers CSV / XLSX."""
    try:
        source_content, source_name = _read_file(source)
        target_content, target_name = _read_file(target)
    except OSError as e:
        print(f"Erreur: {e}")
        return 1
    response = service.create_batch(name, source_content, source_name, target_content, target_name)
    return _print_response(response)


def cmd_report(service: ReconcordService, batch_id: str) -> int:
    try:
        batch = service.manager.get_batch(batch_id)
    except ReconcordError as e:
        return _print_response(error_response(e))
    print_report_console(batch)
    return 0


def cmd_export(service: ReconcordService, batch_id: str, mapping_path: str | None) -> int:
    response = service.export_batch(batch_id)
    code = _print_response(response)
    if code == 0 and mapping_path:
        build_mapping_csv(service.manager.get_batch(batch_id), mapping_path)
        print(f"Mapping écrit: {mapping_path}")
    return code


def cmd_rules(service: ReconcordService, args: argparse.Namespace) -> int:
    if args.rules_command == "list":
        return _print_response(service.list_rules())
    if args.rules_command == "options":
        return _print_response(service.rule_options())
    if args.rules_command == "add":
        return _print_response(service.create_rule(_load_json_arg(args.rule)))
    if args.rules_command == "update":
        return _print_response(service.update_rule(args.rule_id, _load_json_arg(args.rule)))
    if args.rules_command == "delete":
        return _print_response(service.delete_rule(args.rule_id))
    if args.rules_command == "reorder":
        return _print_response(service.reorder_rules(args.rule_ids))
    if args.rules_command == "import":
        rules = _load_json_arg(f"@{args.file}")
        if not isinstance(rules, list):
            print("Erreur: le fichier doit contenir une liste de règles")
            return 1
        response = service.list_rules()
        for data in rules:
            response = service.create_rule(data)
            if response["status_code"] >= 400:
                break
        return _print_response(response)
    return 1


def cmd_fields(service: ReconcordService, args: argparse.Namespace) -> int:
    if args.fields_command == "list":
        return _print_response(service.list_fields())
    if args.fields_command == "add":
        return _print_response(service.configure_field(args.name, args.type, args.description))
    if args.fields_command == "delete":
        return _print_response(service.delete_field(args.name))
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reconcord",
        description="Rapprochement de lignes entre un jeu source et un jeu cible (CSV / XLSX)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", "-c", help="Fichier config JSON")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=sorted(VALID_LOG_LEVELS),
        help="Niveau de log",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commandes")

    p_create = subparsers.add_parser("create", help="Créer un lot")
    p_create.add_argument("--name", "-n", required=True, help="Nom du lot")
    p_create.add_argument("--source", "-s", required=True, help="Fichier source (.csv / .xlsx)")
    p_create.add_argument("--target", "-t", required=True, help="Fichier cible (.csv / .xlsx)")

    subparsers.add_parser("list", help="Lister les lots")

    p_results = subparsers.add_parser("results", help="Résultats d'un lot (JSON)")
    p_results.add_argument("batch_id")

    p_report = subparsers.add_parser("report", help="Résumé d'un lot")
    p_report.add_argument("batch_id")

    p_rerun = subparsers.add_parser("rerun", help="Relancer un lot avec les règles actuelles")
    p_rerun.add_argument("batch_id")

    p_export = subparsers.add_parser("export", help="Exporter un lot en xlsx")
    p_export.add_argument("batch_id")
    p_export.add_argument("--mapping", "-m", help="Chemin pour mapping.csv")

    p_rules = subparsers.add_parser("rules", help="Gérer les règles")
    rules_sub = p_rules.add_subparsers(dest="rules_command", required=True)
    rules_sub.add_parser("list")
    rules_sub.add_parser("options")
    p_add = rules_sub.add_parser("add")
    p_add.add_argument("rule", help="Règle JSON ou @fichier.json")
    p_update = rules_sub.add_parser("update")
    p_update.add_argument("rule_id")
    p_update.add_argument("rule", help="Attributs JSON ou @fichier.json")
    p_delete = rules_sub.add_parser("delete")
    p_delete.add_argument("rule_id")
    p_reorder = rules_sub.add_parser("reorder", help="Fixer l'ordre d'évaluation des règles")
    p_reorder.add_argument("rule_ids", nargs="+", help="Tous les identifiants, dans le nouvel ordre")
    p_import = rules_sub.add_parser("import")
    p_import.add_argument("file", help="Fichier JSON contenant une liste de règles")

    p_fields = subparsers.add_parser("fields", help="Gérer les champs")
    fields_sub = p_fields.add_subparsers(dest="fields_command", required=True)
    fields_sub.add_parser("list")
    p_fadd = fields_sub.add_parser("add")
    p_fadd.add_argument("name")
    p_fadd.add_argument("type")
    p_fadd.add_argument("--description", "-d", default="")
    p_fdel = fields_sub.add_parser("delete")
    p_fdel.add_argument("name")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        config = load_config(args.config)
    except ReconcordError as e:
        print(f"Erreur: {e}")
        return 1
    setup_logging(args.log_level or config.log_level)

    try:
        service = ReconcordService.from_config(config)
    except ReconcordError as e:
        print(f"Erreur: {e}")
        return 1

    try:
        if args.command == "create":
            return cmd_create(service, args.name, args.source, args.target)
        if args.command == "list":
            return _print_response(service.list_batches())
        if args.command == "results":
            return _print_response(service.get_batch_results(args.batch_id))
        if args.command == "report":
            return cmd_report(service, args.batch_id)
        if args.command == "rerun":
            return _print_response(service.rerun_batch(args.batch_id))
        if args.command == "export":
            return cmd_export(service, args.batch_id, args.mapping)
        if args.command == "rules":
            return cmd_rules(service, args)
        if args.command == "fields":
            return cmd_fields(service, args)
    except (OSError, json.JSONDecodeError) as e:
        print(f"Erreur: {e}")
        return 1

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
