def post_payload(**overrides):
    payload = {
        "title": "Hesap Güvenliği İçin 5 İpucu",
        "excerpt": "Oyun hesabınızı korumanın yolları",
        "content": "İki adımlı doğrulamayı açın.",
        "category": "Güvenlik",
    }
    payload.update(overrides)
    return payload


def test_create_fills_slug_and_meta(client, admin_headers):
    response = client.post("/api/blog", headers=admin_headers, json=post_payload(status="published"))
    assert response.status_code == 201
    post = response.json()["data"]
    assert post["slug"] == "hesap-guvenligi-icin-5-ipucu"
    assert post["metaTitle"] == "Hesap Güvenliği İçin 5 İpucu"
    assert post["metaDescription"] == "Oyun hesabınızı korumanın yolları"
    assert post["publishedAt"] is not None


def test_generated_slugs_are_made_unique(client, admin_headers):
    first = client.post("/api/blog", headers=admin_headers, json=post_payload(title="Valorant Rehberi")).json()["data"]
    second = client.post("/api/blog", headers=admin_headers, json=post_payload(title="Valorant Rehberi")).json()["data"]
    assert (first["slug"], second["slug"]) == ("valorant-rehberi", "valorant-rehberi-2")


def test_explicit_duplicate_slug_is_rejected(client, admin_headers):
    client.post("/api/blog", headers=admin_headers, json=post_payload(slug="rehber"))
    response = client.post("/api/blog", headers=admin_headers, json=post_payload(slug="rehber"))
    assert response.status_code == 400
    assert response.json()["error"] == "Slug is already in use"


def test_public_list_shows_published_only(client, admin_headers):
    client.post("/api/blog", headers=admin_headers, json=post_payload(title="Taslak"))
    client.post("/api/blog", headers=admin_headers, json=post_payload(title="Yayında", status="published"))

    published = client.get("/api/blog").json()["data"]
    assert [b["title"] for b in published["blogs"]] == ["Yayında"]
    assert published["pagination"]["total"] == 1

    everything = client.get("/api/blog", params={"status": "all"}).json()["data"]
    assert everything["pagination"]["total"] == 2


def test_reading_by_slug_counts_a_view(client, admin_headers):
    post = client.post("/api/blog", headers=admin_headers,
                       json=post_payload(title="Okunan", status="published")).json()["data"]
    client.get(f"/api/blog/{post['slug']}")
    again = client.get(f"/api/blog/{post['_id']}").json()["data"]
    assert again["views"] == 2

    counted = client.post(f"/api/blog/{post['_id']}/view").json()
    assert counted["views"] == 3


def test_drafts_do_not_count_views(client, admin_headers):
    post = client.post("/api/blog", headers=admin_headers, json=post_payload(title="Taslak")).json()["data"]
    assert client.get(f"/api/blog/{post['slug']}").json()["data"]["views"] == 0


def test_publishing_sets_published_at_once(client, admin, admin_headers):
    post = client.post("/api/blog", headers=admin_headers, json=post_payload()).json()["data"]
    assert post["publishedAt"] is None

    published = client.put(f"/api/blog/{post['_id']}", headers=admin_headers, json={"status": "published"}).json()["data"]
    assert published["publishedAt"] is not None
    assert published["updatedBy"] == str(admin["_id"])

    edited = client.put(f"/api/blog/{post['_id']}", headers=admin_headers,
                        json={"status": "published", "title": "Yeni Başlık"}).json()["data"]
    assert edited["publishedAt"] == published["publishedAt"]
    assert edited["title"] == "Yeni Başlık"


def test_writing_requires_admin(client, user_headers):
    assert client.post("/api/blog", headers=user_headers, json=post_payload()).status_code == 403


def test_delete_post(client, admin_headers):
    post = client.post("/api/blog", headers=admin_headers, json=post_payload()).json()["data"]
    assert client.delete(f"/api/blog/{post['_id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/blog/{post['_id']}").status_code == 404


def test_slug_without_letters_falls_back_to_title(client, admin_headers):
    post = client.post("/api/blog", headers=admin_headers,
                       json=post_payload(title="CS2 Rehberi", slug="!!!")).json()["data"]
    assert post["slug"] == "cs2-rehberi"

    response = client.put(f"/api/blog/{post['_id']}", headers=admin_headers, json={"slug": "???"})
    assert response.status_code == 400
