def test_health(client):
    res = client.get("/api/health")
    assert res.status_code == 200
    assert res.json()["ok"] is True
    assert res.headers["x-content-type-options"] == "nosniff"


def test_bare_domain_redirects_to_canonical_host(client):
    res = client.get("/quote?vrm=AB12CDE", headers={"host": "gotempcover.co.uk"}, follow_redirects=False)
    assert res.status_code == 308
    assert res.headers["location"] == "https://www.gotempcover.co.uk/quote?vrm=AB12CDE"


def test_api_paths_are_not_redirected(client):
    res = client.get("/api/health", headers={"host": "gotempcover.co.uk"}, follow_redirects=False)
    assert res.status_code == 200


def test_locally_stored_documents_are_served(client, local_storage, monkeypatch):
    import main
    from starlette.staticfiles import StaticFiles

    # The mount was bound at import; point it at this test's storage directory
    for route in main.app.routes:
        if getattr(route, "name", "") == "static":
            monkeypatch.setattr(route, "app", StaticFiles(directory=str(local_storage)))
    (local_storage / "policies").mkdir()
    (local_storage / "policies" / "doc.pdf").write_bytes(b"%PDF-1.4 test")

    res = client.get("/static/policies/doc.pdf")
    assert res.status_code == 200
    assert res.content == b"%PDF-1.4 test"
