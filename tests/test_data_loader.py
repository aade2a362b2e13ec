import os
import threading

import pytest
from data_loader import RequirementStore, StoreLoadError, load_data
from requirement import And, Leaf, Or

DATA_DIR = os.path.join(os.path.dirname(__file__), "..", "data")

HEADER = "COURSE_CODE\tPREREQ_STRING\tTOKENS\tSTATUS\n"


def _write_tsv(tmp_path, rows, header=HEADER, name="prereqs.tsv"):
    path = tmp_path / name
    path.write_text(header + "".join("\t".join(r) + "\n" for r in rows), encoding="utf-8")
    return str(path)


class TestLoadData:
    def test_loads_ok_rows(self, tmp_path):
        path = _write_tsv(tmp_path, [
            ("CS 2110", "CS 1110 or CS 1112.", "COURSE(CS 1110) OR COURSE(CS 1112)", "OK"),
            ("CS 4820", "CS 2800 and CS 3110.", "COURSE(CS 2800) AND COURSE(CS 3110)", "OK"),
        ])
        store = load_data(path)
        assert len(store) == 2
        assert store.courses() == ["CS 2110", "CS 4820"]
        assert store.get("CS 2110") == Or(Leaf("CS 1110"), Leaf("CS 1112"))
        assert store.prose("CS 4820") == "CS 2800 and CS 3110."

    def test_status_prefix_match(self, tmp_path):
        path = _write_tsv(tmp_path, [
            ("CS 2110", "", "COURSE(CS 1110)", "OK - reviewed"),
        ])
        assert load_data(path).has_requirement("CS 2110")

    def test_non_ok_status_skipped_as_invalid(self, tmp_path):
        path = _write_tsv(tmp_path, [
            ("CS 2110", "", "COURSE(CS 1110)", "OK"),
            ("CS 4780", "varies", "", "NEEDS_REVIEW"),
            ("CS 4781", "varies", "COURSE(CS 2110)", "FAILED"),
        ])
        store = load_data(path)
        assert len(store) == 1
        assert store.stats["skipped_invalid"] == 2
        assert store.get("CS 4781") is None

    def test_missing_code_or_tokens_skipped_as_malformed(self, tmp_path):
        path = _write_tsv(tmp_path, [
            ("", "", "COURSE(CS 1110)", "OK"),
            ("ECON 3030", "ECON 3010.", "", "OK"),
            ("CS 2110", "", "COURSE(CS 1110)", ""),
            ("CS 2800", "", "COURSE(MATH 1110)", "OK"),
        ])
        store = load_data(path)
        assert store.courses() == ["CS 2800"]
        assert store.stats["skipped_malformed"] == 3
        assert store.stats["loaded"] == 1

    def test_course_codes_normalized(self, tmp_path):
        path = _write_tsv(tmp_path, [("cs2110", "", "COURSE(cs1110)", "OK")])
        store = load_data(path)
        assert store.courses() == ["CS 2110"]
        assert store.get("CS 2110") == Leaf("CS 1110")

    def test_directory_resolves_to_default_file(self, tmp_path):
        _write_tsv(tmp_path, [("CS 2110", "", "COURSE(CS 1110)", "OK")])
        assert len(load_data(str(tmp_path))) == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_data(str(tmp_path / "nope.tsv"))

    def test_missing_columns(self, tmp_path):
        path = _write_tsv(
            tmp_path,
            [("CS 2110", "COURSE(CS 1110)")],
            header="COURSE_CODE\tTOKENS\n",
        )
        with pytest.raises(StoreLoadError):
            load_data(path)

    def test_logs_summary(self, tmp_path, capsys):
        path = _write_tsv(tmp_path, [
            ("CS 2110", "", "COURSE(CS 1110)", "OK"),
            ("CS 4780", "", "", "NEEDS_REVIEW"),
        ])
        load_data(path)
        captured = capsys.readouterr()
        assert "[INFO] Loaded 1 courses" in captured.out
        assert "[WARN] 1 row(s) flagged invalid" in captured.err
        assert "[WARN]" not in captured.out

    def test_rows_with_extra_fields_counted_as_malformed(self, tmp_path, capsys):
        path = _write_tsv(tmp_path, [
            ("CS 2800", "", "COURSE(MATH 1110)", "OK"),
            ("CS 2110", "x", "COURSE(CS 1110)", "OK", "stray"),
        ])
        store = load_data(path)
        assert store.courses() == ["CS 2800"]
        assert store.stats["skipped_malformed"] == 1
        assert "[WARN] 1 malformed row(s) skipped" in capsys.readouterr().err


class TestRequirementStore:
    def test_lazy_parse_is_cached(self, cs_store):
        first = cs_store.get("CS 4820")
        assert first is cs_store.get("cs4820")
        assert first == And(Leaf("CS 2800"), Leaf("CS 3110"))

    def test_unknown_course(self, cs_store):
        assert cs_store.get("CS 1110") is None
        assert "CS 1110" not in cs_store
        assert cs_store.token_string("CS 1110") is None

    def test_parse_failure_treated_as_no_prereqs(self, capsys):
        store = RequirementStore({"ORIE 3500": "COURSE(MATH 1920) AND"})
        assert store.get("ORIE 3500") is None
        assert "ORIE 3500" in store.parse_failures
        assert "[WARN] Failed to parse prereqs for ORIE 3500" in capsys.readouterr().err
        # Logged once, then remembered.
        assert store.get("ORIE 3500") is None
        assert capsys.readouterr().err == ""
        assert store.token_string("ORIE 3500") == "COURSE(MATH 1920) AND"

    def test_concurrent_first_access(self, capsys):
        store = RequirementStore({
            "CS 4820": "COURSE(CS 2800) AND COURSE(CS 3110)",
            "ORIE 3500": "COURSE(MATH 1920) AND",
        })
        barrier = threading.Barrier(8)
        trees = []
        failed = []

        def worker():
            barrier.wait()
            trees.append(store.get("CS 4820"))
            failed.append(store.get("ORIE 3500"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(trees) == 8
        assert all(tree is trees[0] for tree in trees)
        assert trees[0] == And(Leaf("CS 2800"), Leaf("CS 3110"))
        assert failed == [None] * 8
        assert list(store.parse_failures) == ["ORIE 3500"]
        warnings = [line for line in capsys.readouterr().err.splitlines() if line.startswith("[WARN]")]
        assert len(warnings) == 1

    def test_warm_reports_failures(self):
        store = RequirementStore({
            "CS 2110": "COURSE(CS 1110)",
            "CS 9999": "LPAREN COURSE(CS 1110)",
        })
        assert store.warm() == 1
        assert list(store.parse_failures) == ["CS 9999"]

    def test_blank_token_strings_dropped(self):
        store = RequirementStore({"CS 2110": "  ", "CS 2800": None, "CS 3110": "COURSE(CS 2110)"})
        assert store.courses() == ["CS 3110"]

    def test_from_trees(self):
        tree = And(Or(Leaf("CS 2110"), Leaf("CS 2112")), Leaf("CS 2800"))
        store = RequirementStore.from_trees({"CS 3780": tree})
        assert store.get("CS 3780") == tree


class TestBundledData:
    def test_bundled_store_loads(self):
        store = load_data(DATA_DIR)
        assert len(store) == 18
        assert store.stats["skipped_invalid"] == 1
        assert store.stats["skipped_malformed"] == 1
        assert store.warm() == 1
        assert list(store.parse_failures) == ["ORIE 3500"]

    def test_bundled_specials_survive_loading(self):
        store = load_data(DATA_DIR)
        tree = store.get("MATH 1910")
        assert tree.right == Leaf(
            "Special requirement: one semester of calculus (AP credit accepted)"
        )
