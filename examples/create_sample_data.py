"""Crée des jeux source / cible et un fichier de règles de démonstration pour Reconcord."""

import json
from pathlib import Path

import pandas as pd

DATA_DIR = Path(__file__).parent / "data"
DATA_DIR.mkdir(exist_ok=True)

source = pd.DataFrame({
    "email": ["a.dupont@univ.fr", "m.martin@univ.fr", "b.bernard@univ.fr", "l.leroy@univ.fr"],
    "nom": ["Dupont", "Martin", "Bernard", "Leroy"],
    "prenom": ["Anne", "Marc", "Bruno", "Léa"],
    "montant": ["120", "80.5", "42", "300"],
})

target = pd.DataFrame({
    "courriel": ["A.Dupont@univ.fr", "m.martin@univ.fr", "m.martin@univ.fr", "c.durand@univ.fr"],
    "name": ["Dupont", "Martin", "Martin", "Durand"],
    "amount": ["120.00", "80,5", "80,5", "15"],
})

rules = [
    {
        "rule_name": "email",
        "source_field": "email",
        "target_field": "courriel",
        "match_type": "normalized_exact",
        "rationale_statement": "Même adresse: {source_value}",
    },
    {
        "rule_name": "nom",
        "source_field": "nom",
        "target_field": "name",
        "match_type": "fuzzy",
    },
    {
        "rule_name": "montant",
        "source_field": "montant",
        "target_field": "amount",
        "match_type": "custom",
        "code_block": "float(source_value) == float(target_value.replace(',', '.'))",
    },
]

source.to_csv(DATA_DIR / "source.csv", index=False)
target.to_excel(DATA_DIR / "target.xlsx", index=False, engine="openpyxl")
(DATA_DIR / "rules.json").write_text(json.dumps(rules, indent=2, ensure_ascii=False), encoding="utf-8")
print(f"Fichiers créés dans {DATA_DIR}")
print("  reconcord rules import examples/data/rules.json")
print("  reconcord create -n Demo -s examples/data/source.csv -t examples/data/target.xlsx")
