from odontomind.errors import CredentialMissingError, TransportError


def upload(client, path, pdf, name="Aula1.pdf", content_type="application/pdf", **data):
    files = {"file": (name, pdf, content_type)}
    return client.post(path, files=files, data=data)


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200


def test_process_and_save_document(client, gateway, sample_pdf):
    response = upload(client, "/docs/process", sample_pdf, folder="Endodontia")
    assert response.status_code == 200
    draft = response.json()
    assert draft["summary"]["title"] == "Resumo de Aula1.pdf"
    assert "canal radicular" in draft["content"]
    # Nothing is stored until the draft is saved
    assert client.get("/docs").json() == []
    assert gateway.calls["summarize"] == 1
    assert gateway.calls["generate_questions"] == 1

    response = client.post("/docs", json={"draft_id": draft["id"]})
    assert response.status_code == 200
    assert response.json()["id"] == draft["id"]

    docs = client.get("/docs").json()
    assert len(docs) == 1
    doc = docs[0]
    assert doc["name"] == "Aula1.pdf"
    assert doc["folder"] == "Endodontia"
    assert doc["summary"]["content"] == "S"
    assert doc["summary"]["folder"] == "Endodontia"
    assert len(doc["questions"]) == 5


def test_saved_document_reads_back_unchanged(client, sample_pdf):
    draft = upload(client, "/docs/process", sample_pdf, folder="Periodontia").json()
    saved = client.post("/docs", json={"draft_id": draft["id"], "title": "Meu resumo de periodontia"}).json()

    first = client.get(f"/docs/{saved['id']}").json()
    second = client.get(f"/docs/{saved['id']}").json()
    assert first == second
    assert first["summary"]["title"] == "Meu resumo de periodontia"
    assert first["summary"]["content"] == draft["summary"]["content"]
    assert first["questions"] == draft["questions"]


def test_save_uses_server_side_draft(client, sample_pdf):
    draft = upload(client, "/docs/process", sample_pdf, folder="Endodontia").json()
    tampered = {
        "draft_id": draft["id"],
        "content": "outro texto",
        "questions": [{"id": "q-x", "question": "?", "options": ["a", "b", "c", "d"],
                       "correct_answer": "nao e uma opcao"}],
    }
    saved = client.post("/docs", json=tampered).json()
    assert saved["content"] == draft["content"]
    assert saved["questions"] == draft["questions"]
    assert all(q["correct_answer"] in q["options"] for q in saved["questions"])


def test_draft_is_saved_only_once(client, sample_pdf):
    draft = upload(client, "/docs/process", sample_pdf).json()
    assert client.post("/docs", json={"draft_id": draft["id"]}).status_code == 200

    response = client.post("/docs", json={"draft_id": draft["id"]})
    assert response.status_code == 404
    assert response.json()["error"] == "NotFoundError"
    assert len(client.get("/docs").json()) == 1


def test_blank_title_keeps_draft(client, sample_pdf):
    draft = upload(client, "/docs/process", sample_pdf).json()
    response = client.post("/docs", json={"draft_id": draft["id"], "title": "   "})
    assert response.status_code == 400
    assert client.get("/docs").json() == []
    assert client.post("/docs", json={"draft_id": draft["id"]}).status_code == 200


def test_upload_rejects_non_pdf(client, gateway):
    response = upload(client, "/docs/process", b"hello", name="notes.txt", content_type="text/plain")
    assert response.status_code == 400
    assert sum(gateway.calls.values()) == 0


def test_upload_rejects_corrupt_pdf(client, gateway):
    response = upload(client, "/docs/process", b"this is not a pdf", name="broken.pdf")
    assert response.status_code == 422
    assert sum(gateway.calls.values()) == 0


def test_notebook_add_document(client, sample_pdf):
    notebook = client.post("/notebooks", json={"name": "Endodontia"}).json()
    response = upload(client, f"/notebooks/{notebook['id']}/documents", sample_pdf)
    assert response.status_code == 200
    doc = response.json()
    assert doc["folder"] == "Endodontia"

    notebook = client.get(f"/notebooks/{notebook['id']}").json()
    assert notebook["document_ids"] == [doc["id"]]
    assert client.get("/folders").json() == ["Endodontia", "Aulas Gravadas"]


def test_notebook_add_document_ai_failure_stores_nothing(client, gateway, sample_pdf):
    gateway.fail = TransportError("quota exceeded")
    notebook = client.post("/notebooks", json={"name": "Cirurgia"}).json()
    response = upload(client, f"/notebooks/{notebook['id']}/documents", sample_pdf)
    assert response.status_code == 502
    assert client.get("/docs").json() == []
    assert client.get(f"/notebooks/{notebook['id']}").json()["document_ids"] == []


def test_credential_missing_is_reported_distinctly(client, gateway, sample_pdf):
    gateway.fail = CredentialMissingError("A chave da API do Gemini não foi configurada.")
    response = upload(client, "/docs/process", sample_pdf)
    assert response.status_code == 503
    assert response.json()["error"] == "CredentialMissingError"


def test_create_notebook_rejects_blank_name(client):
    response = client.post("/notebooks", json={"name": "   "})
    assert response.status_code == 422


def test_chat_without_documents_makes_no_gateway_call(client, gateway):
    notebook = client.post("/notebooks", json={"name": "Vazio"}).json()
    response = client.post(f"/notebooks/{notebook['id']}/chat", json={"question": "O que é pulpite?"})
    assert response.status_code == 400
    assert response.json()["error"] == "NoDocumentsError"
    assert gateway.calls["chat"] == 0

    history = client.get(f"/notebooks/{notebook['id']}/chat").json()
    assert [m["role"] for m in history] == ["model", "user", "model"]
    assert "adicione pelo menos um documento" in history[-1]["content"]


def test_chat_with_citations(client, gateway, sample_pdf):
    notebook = client.post("/notebooks", json={"name": "Endodontia"}).json()
    upload(client, f"/notebooks/{notebook['id']}/documents", sample_pdf)

    response = client.post(f"/notebooks/{notebook['id']}/chat", json={"question": "Como obturar?"})
    assert response.status_code == 200
    data = response.json()
    assert data["message"]["sources"][0]["document_name"] == "Aula1.pdf"
    citations = [s for s in data["segments"] if s["type"] == "citation"]
    assert citations[0]["text"] == "[1]"
    assert citations[0]["source"]["quote"]
    assert len(gateway.chat_documents) == 1

    history = client.get(f"/notebooks/{notebook['id']}/chat").json()
    assert len(history) == 3


def test_unknown_notebook(client):
    assert client.get("/notebooks/nb-missing").status_code == 404


def test_quiz_flow_records_one_attempt(client, sample_pdf):
    draft = upload(client, "/docs/process", sample_pdf, folder="Endodontia").json()
    client.post("/docs", json={"draft_id": draft["id"]})
    assert client.get("/quiz/topics").json() == ["Endodontia"]

    session = client.post("/quiz/sessions").json()
    sid = session["session_id"]
    quiz = client.post(f"/quiz/{sid}/start", json={"topic": "Endodontia"}).json()
    assert quiz["state"] == "active"
    assert quiz["total"] == 5
    assert quiz["correct_answer"] is None

    answers = {q["question"]: q["correct_answer"] for q in draft["questions"]}
    for i in range(5):
        question = client.get(f"/quiz/{sid}").json()["question"]
        choice = answers[question] if i < 3 else "errada"
        result = client.post(f"/quiz/{sid}/answer", json={"answer": choice}).json()
        assert result["correct"] is (i < 3)
        assert client.post(f"/quiz/{sid}/answer", json={"answer": choice}).status_code == 409
        quiz = client.post(f"/quiz/{sid}/advance").json()

    assert quiz["state"] == "finished"
    assert quiz["percentage"] == 60

    stats = client.get("/profile/stats").json()
    assert stats["total_attempts"] == 1
    assert stats["topics"] == [{"topic": "Endodontia", "score": 3, "total": 5, "accuracy": 60}]

    quiz = client.post(f"/quiz/{sid}/reset").json()
    assert quiz["state"] == "selecting"
    assert quiz["topic"] == "all"


def test_quiz_start_without_questions_keeps_state(client):
    sid = client.post("/quiz/sessions").json()["session_id"]
    response = client.post(f"/quiz/{sid}/start", json={"topic": "Farmacologia"})
    assert response.status_code == 400
    quiz = client.get(f"/quiz/{sid}").json()
    assert quiz["state"] == "selecting"
    assert quiz["total"] == 0


def test_unknown_quiz_session(client):
    assert client.get("/quiz/quiz-missing").status_code == 404


def test_profile_empty(client):
    stats = client.get("/profile/stats").json()
    assert stats == {"total_attempts": 0, "overall_accuracy": 0, "topics": []}
    assert client.get("/profile/chart.png").status_code == 404


def test_recordings_and_summaries(client, sample_pdf):
    draft = upload(client, "/docs/process", sample_pdf, folder="Endodontia").json()
    client.post("/docs", json={"draft_id": draft["id"]})

    response = client.post("/recordings", json={"transcription": "Hoje falamos de periodontite."})
    assert response.status_code == 200
    recording = response.json()
    assert recording["summary"]["folder"] == "Aulas Gravadas"
    assert recording["summary"]["source_type"] == "recording"

    assert [s["source_type"] for s in client.get("/summaries").json()] == ["pdf", "recording"]
    only_recordings = client.get("/summaries", params={"folder": "Aulas Gravadas"}).json()
    assert len(only_recordings) == 1

    dashboard = client.get("/dashboard").json()
    assert dashboard["recent_summaries"][0]["source_type"] == "recording"


def test_recording_requires_transcription(client, gateway):
    response = client.post("/recordings", json={"transcription": "  "})
    assert response.status_code == 400
    assert gateway.calls["summarize"] == 0


def test_live_recording(client, gateway):
    with client.websocket_connect("/recordings/live") as ws:
        ws.send_json({"text": "Anestesia"})
        assert ws.receive_json() == {"transcript": "Anestesia"}
        ws.send_json({"turn_complete": True})
        ws.send_json({"text": "local"})
        assert ws.receive_json() == {"transcript": "Anestesia local"}
        ws.send_json({"stop": True})
        data = ws.receive_json()
    assert data["recording"]["transcription"] == "Anestesia local"
    assert len(client.get("/recordings").json()) == 1
