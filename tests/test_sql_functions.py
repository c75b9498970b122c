import re
from pathlib import Path

import pytest

SQL_DIR = Path(__file__).resolve().parent.parent / "sql"


def function_parameters(sql):
    match = re.search(r"function public\.\w+\((.*?)\)\s*returns", sql, re.S)
    return [line.split()[0] for line in match.group(1).split(",") if line.strip()]


@pytest.mark.parametrize("name, parameters", [
    ("create_channel_with_admin", ["p_name", "p_description", "p_chapter_id", "p_created_by"]),
    ("get_chapter_descendants", ["chapter_uuid"]),
])
def test_rpc_functions_ship_with_matching_parameters(name, parameters):
    sql = (SQL_DIR / f"{name}.sql").read_text()
    assert f"create or replace function public.{name}(" in sql
    assert function_parameters(sql) == parameters


def test_channel_creation_function_adds_admin_membership():
    sql = (SQL_DIR / "create_channel_with_admin.sql").read_text()
    assert "insert into public.channel_members (channel_id, team_member_id, role)" in sql
    assert "'admin'" in sql
