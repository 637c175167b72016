import json

from roomgraph.cli import EXIT_INPUT_ERROR, build_parser, main
from tests.utils_rooms import encode_png, four_room_payload, four_room_plan


def test_parser_requires_rooms():
    args = build_parser().parse_args(["--rooms", "plan.json", "--use-oracle"])
    assert str(args.rooms) == "plan.json"
    assert args.use_oracle
    assert args.image is None


def test_main_writes_result(tmp_path):
    rooms = tmp_path / "plan.json"
    rooms.write_text(json.dumps(four_room_payload()), encoding="utf-8")
    image = tmp_path / "plan.png"
    image.write_bytes(encode_png(four_room_plan()))
    output = tmp_path / "out" / "result.json"

    code = main(["--rooms", str(rooms), "--image", str(image), "--output", str(output), "--log-level", "warning"])

    assert code == 0
    data = json.loads(output.read_text(encoding="utf-8"))
    assert data["floorplan"]["id"] == "plan-1"
    assert len(data["floorplan"]["rooms"]) == 4
    assert data["validation"]["isValid"] is True


def test_main_prints_to_stdout_and_writes_json_logs(tmp_path, capsys):
    rooms = tmp_path / "plan.json"
    rooms.write_text(json.dumps({"id": "p", "rooms": [{"id": "a", "name": "Hall", "width": 2, "depth": 2}]}))
    log_file = tmp_path / "logs" / "run.log"

    code = main(["--rooms", str(rooms), "--json-logs", "--log-file", str(log_file)])

    assert code == 0
    data = json.loads(capsys.readouterr().out)
    assert data["floorplan"]["rooms"][0]["position"] == [1.0, 0.0, 1.0]
    records = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    assert records
    assert {"timestamp", "level", "message"} <= set(records[0])


def test_empty_rooms_is_an_input_error(tmp_path):
    rooms = tmp_path / "plan.json"
    rooms.write_text(json.dumps({"id": "p", "rooms": []}))
    assert main(["--rooms", str(rooms)]) == EXIT_INPUT_ERROR


def test_bad_schema_is_an_input_error(tmp_path):
    rooms = tmp_path / "plan.json"
    rooms.write_text(json.dumps({"id": "p", "rooms": {"a": 1}}))
    assert main(["--rooms", str(rooms)]) == EXIT_INPUT_ERROR


def test_missing_file_is_an_input_error(tmp_path):
    assert main(["--rooms", str(tmp_path / "missing.json")]) == EXIT_INPUT_ERROR


def test_oracle_without_key_is_a_configuration_error(tmp_path, monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    rooms = tmp_path / "plan.json"
    rooms.write_text(json.dumps(four_room_payload()))
    assert main(["--rooms", str(rooms), "--use-oracle"]) == EXIT_INPUT_ERROR
