"""HTTP API tests against the in-memory repository, manual scheduler and offline AI helper."""

import pytest

API = "/api/v1"


@pytest.fixture
def stored(repository, sales_dataset):
    repository.upsert(sales_dataset)
    return sales_dataset


def test_health(client):
    body = client.get("/").json()
    assert body["service"] == "Lumina Analytics"
    assert body["stream"] == "idle"


class TestIngestion:
    def test_upload_csv(self, client, repository):
        content = b"day,visits,channel\n1,120,web\n2,,mobile\n3,150,web\n"
        response = client.post(f"{API}/dataset/", files={"file": ("traffic.csv", content, "text/csv")})

        assert response.status_code == 200
        body = response.json()
        assert body["dataset"]["name"] == "traffic"
        assert body["dataset"]["numericColumns"] == ["day", "visits"]
        assert body["dataset"]["categoricalColumns"] == ["channel"]
        assert body["dataset"]["rowCount"] == 3
        assert body["defaultChart"]["type"] == "Line"
        assert body["defaultChart"]["yAxisKey"] == "visits"

        stored = repository.get(body["dataset"]["id"])
        assert stored.rows[1]["visits"] is None

    def test_upload_empty_file(self, client):
        response = client.post(f"{API}/dataset/", files={"file": ("empty.csv", b"", "text/csv")})
        assert response.status_code == 400

    def test_ingest_grid(self, client):
        payload = {
            "name": "regions",
            "header": ["region", "revenue"],
            "rows": [{"region": "north", "revenue": 10}, {"region": "south", "revenue": 12}],
        }
        body = client.post(f"{API}/dataset/ingest", json=payload).json()

        assert body["dataset"]["numericColumns"] == ["revenue"]
        assert body["defaultChart"]["type"] == "Bar"
        assert body["defaultChart"]["title"] == "revenue by region"

    def test_ingest_without_header(self, client):
        response = client.post(f"{API}/dataset/ingest", json={"name": "x", "header": [], "rows": []})
        assert response.status_code == 400


class TestDatasets:
    def test_list_and_get(self, client, stored):
        listed = client.get(f"{API}/datasets/").json()
        assert [d["id"] for d in listed] == [stored.id]

        body = client.get(f"{API}/dataset/{stored.id}").json()
        assert body["columns"] == ["timestamp", "temperature", "pressure", "city"]
        assert len(body["rows"]) == 8

    def test_unknown_dataset(self, client):
        assert client.get(f"{API}/dataset/missing").status_code == 404
        assert client.get(f"{API}/dataset/missing/statistics").status_code == 404

    def test_put_requires_matching_id(self, client, stored):
        document = client.get(f"{API}/dataset/{stored.id}").json()
        assert client.put(f"{API}/dataset/other-id", json=document).status_code == 400

        document["name"] = "renamed"
        response = client.put(f"{API}/dataset/{stored.id}", json=document)
        assert response.status_code == 200
        assert response.json()["name"] == "renamed"

    def test_delete(self, client, stored, repository):
        assert client.delete(f"{API}/dataset/{stored.id}").json() == {"id": stored.id, "deleted": True}
        assert repository.get(stored.id) is None
        assert client.delete(f"{API}/dataset/{stored.id}").status_code == 404


class TestAnalytics:
    def test_statistics(self, client, stored):
        body = client.get(f"{API}/dataset/{stored.id}/statistics").json()
        assert body["rowCount"] == 8
        temperature = next(s for s in body["summaries"] if s["column"] == "temperature")
        assert temperature["min"] == 20.0
        assert temperature["max"] == 27.0
        assert temperature["median"] == pytest.approx(23.5)
        assert temperature["nullCount"] == 0

    def test_statistics_follow_the_filter(self, client, stored):
        body = client.get(f"{API}/dataset/{stored.id}/statistics", params={"column": "city", "value": "YORK"}).json()
        assert body["rowCount"] == 3
        temperature = next(s for s in body["summaries"] if s["column"] == "temperature")
        assert temperature["mean"] == pytest.approx((20 + 22 + 27) / 3)

    def test_unknown_filter_column(self, client, stored):
        response = client.get(f"{API}/dataset/{stored.id}/statistics", params={"column": "country", "value": "x"})
        assert response.status_code == 400

    def test_correlation(self, client, stored):
        body = client.get(f"{API}/dataset/{stored.id}/correlation").json()
        assert body["numericColumns"] == ["temperature", "pressure"]
        assert body["correlations"][0]["correlation"] == pytest.approx(1.0)
        assert body["matrix"]["pressure"]["temperature"] == pytest.approx(1.0)
        assert body["matrix"]["temperature"]["temperature"] == 1.0

    def test_correlation_on_a_small_filter(self, client, stored):
        body = client.get(f"{API}/dataset/{stored.id}/correlation", params={"column": "city", "value": "boston"}).json()
        assert body["correlations"] == []
        assert body["matrix"]["temperature"]["pressure"] is None

    def test_histogram(self, client, stored):
        body = client.get(f"{API}/dataset/{stored.id}/histogram", params={"column": "temperature", "bins": 7}).json()
        assert body["bins"] == 7
        assert [b["count"] for b in body["buckets"]] == [1, 1, 1, 1, 1, 1, 2]
        assert body["buckets"][0]["rangeLabel"] == "20.0 - 21.0"

    def test_histogram_with_filter(self, client, stored):
        params = {"column": "pressure", "bins": 2, "filterColumn": "city", "filterValue": "chicago"}
        body = client.get(f"{API}/dataset/{stored.id}/histogram", params=params).json()
        assert sum(b["count"] for b in body["buckets"]) == 2

    def test_histogram_rejects_bad_input(self, client, stored):
        url = f"{API}/dataset/{stored.id}/histogram"
        assert client.get(url, params={"column": "nope"}).status_code == 400
        assert client.get(url, params={"column": "temperature", "bins": 0}).status_code == 422

    def test_rows_filter_and_paging(self, client, stored):
        url = f"{API}/dataset/{stored.id}/rows"
        body = client.get(url, params={"column": "city", "value": "new york"}).json()
        assert body["total"] == 3
        assert [row["temperature"] for row in body["rows"]] == [20.0, 22.0, 27.0]

        page = client.get(url, params={"offset": 6, "limit": 5}).json()
        assert page["total"] == 8
        assert len(page["rows"]) == 2

    def test_empty_filter_text_keeps_all_rows(self, client, stored):
        body = client.get(f"{API}/dataset/{stored.id}/rows", params={"column": "city", "value": ""}).json()
        assert body["total"] == 8


class TestChartsAndChat:
    def test_chart_from_suggestion(self, client, stored):
        suggestion = {"type": "Scatter", "xAxisKey": "temperature", "yAxisKey": "pressure"}
        body = client.post(f"{API}/dataset/{stored.id}/charts", json=suggestion).json()
        assert body["title"] == "AI Generated Chart"
        assert body["color"] == "#ec4899"
        assert body["id"]

    def test_chart_with_unknown_axis(self, client, stored):
        suggestion = {"type": "Bar", "xAxisKey": "city", "yAxisKey": "humidity"}
        response = client.post(f"{API}/dataset/{stored.id}/charts", json=suggestion)
        assert response.status_code == 400

    def test_chat_offline(self, client, stored):
        response = client.post(f"{API}/dataset/{stored.id}/chat", json={"message": "plot pressure over temperature"})
        body = response.json()
        assert body["suggestedChart"]["xAxisKey"] == "pressure"
        assert body["suggestedChart"]["yAxisKey"] == "temperature"

    def test_insights_offline(self, client, stored):
        body = client.post(f"{API}/dataset/{stored.id}/insights").json()
        assert "8 rows" in body["summary"]
        assert body["recommendation"] == "Line chart: pressure vs temperature"


class TestStream:
    def test_toggle_live_and_back(self, client, stored, scheduler, repository):
        body = client.post(f"{API}/stream/toggle", json={"datasetId": stored.id}).json()
        assert body["state"] == "live"
        assert body["datasetId"] == stored.id

        scheduler.advance(3.0)
        rows = repository.get(stored.id).rows
        assert len(rows) == 8
        assert rows[0]["temperature"] == 22.0
        assert rows[-1]["timestamp"] == "2024-01-01T12:00:00.001Z"
        assert client.get(f"{API}/stream").json()["ticks"] == 2

        assert client.post(f"{API}/stream/toggle").json()["state"] == "idle"
        scheduler.advance(3.0)
        assert repository.get(stored.id).rows[0]["temperature"] == 22.0

    def test_start_refuses_dataset_without_numbers(self, client):
        created = client.post(
            f"{API}/dataset/ingest",
            json={"name": "labels", "header": ["tag"], "rows": [{"tag": "a"}]},
        ).json()
        body = client.post(f"{API}/stream/start", json={"datasetId": created["dataset"]["id"]}).json()
        assert body["state"] == "idle"

    def test_deleting_the_live_dataset_stops_the_stream(self, client, stored, scheduler):
        client.post(f"{API}/stream/start", json={"datasetId": stored.id})
        client.delete(f"{API}/dataset/{stored.id}")

        status = client.get(f"{API}/stream").json()
        assert status["state"] == "idle"
        assert status["datasetId"] is None
        assert scheduler.active_tasks == []

    def test_switching_active_dataset_follows_while_live(self, client, stored):
        other = client.post(
            f"{API}/dataset/ingest",
            json={"name": "other", "header": ["v"], "rows": [{"v": 1}, {"v": 2}]},
        ).json()["dataset"]["id"]

        client.post(f"{API}/stream/start", json={"datasetId": stored.id})
        body = client.put(f"{API}/stream/active", json={"datasetId": other}).json()
        assert body == {"state": "live", "datasetId": other, "intervalSeconds": 1.5, "ticks": 0}

        assert client.post(f"{API}/stream/stop").json()["state"] == "idle"
