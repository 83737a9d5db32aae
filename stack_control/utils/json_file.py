"""
JSONファイル読み書きユーティリティ
"""
import json
import os
import tempfile
from pathlib import Path
from typing import Any


def read_json(path: Path, default: Any = None) -> Any:
    """JSONファイルを読み込み（存在しなければ default）"""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return default
    return json.loads(raw)


def write_json_atomic(path: Path, payload: Any) -> None:
    """一時ファイル経由でJSONを書き込み、置き換える"""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
