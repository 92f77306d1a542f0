import hashlib
import json

import joblib
import matplotlib.pyplot as plt
import pandas as pd

from src.model import utils as mutils


def test_save_frame_and_json_create_parents(tmp_path):
    csv = mutils.save_frame(pd.DataFrame({"a": [1, 2]}), tmp_path / "x" / "y" / "t.csv")
    assert pd.read_csv(csv)["a"].tolist() == [1, 2]
    js = mutils.save_json({"p": tmp_path}, tmp_path / "z" / "m.json")
    assert json.loads(js.read_text())["p"] == str(tmp_path)


def test_sha256sum(tmp_path):
    path = tmp_path / "blob.bin"
    path.write_bytes(b"county" * 50000)
    assert mutils.sha256sum(path) == hashlib.sha256(b"county" * 50000).hexdigest()


def test_save_figure_closes_it(tmp_path):
    fig, ax = plt.subplots()
    ax.plot([0, 1], [1, 0])
    out = mutils.save_figure(fig, tmp_path / "figs" / "line.png")
    assert out.stat().st_size > 0
    assert not plt.fignum_exists(fig.number)


def test_save_model_with_summary(tmp_path):
    summary = mutils.save_model_with_summary({"alpha": 0.1}, tmp_path / "models" / "m.joblib",
                                             summary_extra={"alpha": 0.1})
    assert joblib.load(tmp_path / "models" / "m.joblib") == {"alpha": 0.1}
    on_disk = json.loads((tmp_path / "models" / "m.joblib.summary.json").read_text())
    assert on_disk["sha256"] == summary["sha256"]
    assert on_disk["type"] == "dict"
    assert on_disk["alpha"] == 0.1


def test_file_manifest_skips_missing(tmp_path):
    present = tmp_path / "a.csv"
    present.write_text("a\n1\n")
    manifest = mutils.file_manifest([present, tmp_path / "gone.csv"])
    assert list(manifest) == [str(present)]
    assert manifest[str(present)]["size"] == present.stat().st_size
