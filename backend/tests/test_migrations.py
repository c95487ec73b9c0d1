from pathlib import Path

from scripts.run_migrations import MIGRATIONS_DIR, pending_migrations, split_sql_statements


def test_split_keeps_dollar_quoted_bodies_together() -> None:
    sql = """
-- leading comment
create table a (id int);

create function touch() returns trigger as $$
begin
  new.updated_at = now();
  return new;
end;
$$ language plpgsql;
insert into a values (1);
"""
    statements = split_sql_statements(sql)
    assert len(statements) == 3
    assert statements[0] == "create table a (id int);"
    assert statements[1].startswith("create function touch()")
    assert statements[1].endswith("$$ language plpgsql;")


def test_pending_migrations_skip_applied_files(tmp_path: Path) -> None:
    for name in ("002_more.sql", "001_init.sql", "notes.txt"):
        (tmp_path / name).write_text("select 1;", encoding="utf-8")
    assert [p.name for p in pending_migrations(set(), tmp_path)] == ["001_init.sql", "002_more.sql"]
    assert [p.name for p in pending_migrations({"001_init.sql"}, tmp_path)] == ["002_more.sql"]


def test_schema_defines_series_columns() -> None:
    sql = (MIGRATIONS_DIR / "001_init.sql").read_text(encoding="utf-8")
    statements = split_sql_statements(sql)
    assert any(s.startswith("create table if not exists transactions") for s in statements)
    assert sql.count("parent_recurring_id uuid,") == 2
