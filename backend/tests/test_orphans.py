from types import SimpleNamespace

from sqlalchemy.exc import OperationalError

from painel.utils.orphans import delete_in_batches, find_orphans, path_variations


def _pedido(fotos=(), aprovacao=(), molde=()):
    return SimpleNamespace(fotos_cliente=list(fotos), foto_aprovacao=list(aprovacao), molde_producao=list(molde))


def _seed(storage, *paths):
    for path in paths:
        storage.upload(path, b"data")


def test_path_variations_decodes_urls():
    url = "http://testserver/storage/v1/object/public/mockup-images/aprovacao/Foto%20A.png"
    assert path_variations(url, "mockup-images") == ["aprovacao/foto%20a.png", "aprovacao/foto a.png"]
    assert path_variations("https://elsewhere.test/x.png", "mockup-images") == []
    assert path_variations(None, "mockup-images") == []


def test_find_orphans_protects_client_photos(storage):
    _seed(
        storage,
        "clientes/unreferenced.jpg",
        "aprovacao/used.png",
        "aprovacao/stale.png",
        "molde/Used Mould.png",
        "mockups/base.png",
        "mockups/old.png",
    )
    pedidos = [
        _pedido(
            aprovacao=[storage.public_url("aprovacao/used.png")],
            molde=[storage.public_url("molde/Used Mould.png")],
        )
    ]
    report = find_orphans(
        storage,
        pedidos,
        canvas_urls=[storage.public_url("mockups/base.png")],
        mockup_urls=[],
        count_mockup_references=lambda path: 0,
    )
    assert sorted(report.orphans) == ["aprovacao/stale.png", "mockups/old.png"]
    assert report.protected == ["clientes/unreferenced.jpg"]
    summary = report.summary()
    assert summary["orphanCount"] == 2
    assert summary["totalFiles"] == 6
    assert summary["protectedCount"] == 1


def test_mockup_files_get_a_second_check(storage):
    _seed(storage, "mockups/a.png", "mockups/b.png")

    def count(path):
        if path == "mockups/a.png":
            return 1
        raise OperationalError("select", {}, Exception("db down"))

    report = find_orphans(storage, [], [], [], count)
    assert report.orphans == []
    assert sorted(report.protected) == ["mockups/a.png", "mockups/b.png"]


def test_delete_in_batches_counts_removed(storage):
    paths = [f"aprovacao/{i}.png" for i in range(5)]
    _seed(storage, *paths)
    assert delete_in_batches(storage, paths, batch_size=2) == 5
    assert storage.list("aprovacao") == []


def test_summary_limits_listed_files(storage):
    _seed(storage, *[f"molde/{i:03d}.png" for i in range(60)])
    report = find_orphans(storage, [], [], [], lambda path: 0)
    summary = report.summary()
    assert summary["orphanCount"] == 60
    assert len(summary["orphanFiles"]) == 50
    assert summary["orphanFiles"][0] == {"path": "molde/000.png", "size": 0, "lastModified": ""}


def test_cleanup_script_counts_then_deletes(app_storage, monkeypatch, capsys):
    import importlib.util
    import json
    import uuid
    from pathlib import Path

    script = Path(__file__).resolve().parents[1] / "scripts" / "cleanup_orphans.py"
    spec = importlib.util.spec_from_file_location("cleanup_orphans", script)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    orphan = f"molde/solto-{uuid.uuid4().hex[:6]}.png"
    _seed(app_storage, orphan)

    monkeypatch.setattr("sys.argv", ["cleanup_orphans.py"])
    assert module.main() == 0
    report = json.loads(capsys.readouterr().out)
    assert report["orphanCount"] >= 1
    assert app_storage.exists(orphan)

    monkeypatch.setattr("sys.argv", ["cleanup_orphans.py", "--delete"])
    assert module.main() == 0
    assert json.loads(capsys.readouterr().out)["deleted"] >= 1
    assert not app_storage.exists(orphan)
