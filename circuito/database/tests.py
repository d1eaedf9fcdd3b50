import logging

import pytest
from fastapi import HTTPException

from circuito.database.database import get_db


class TestGetDb:

    def test_http_exception_no_se_loguea_como_error_de_base(self, caplog):
        session = get_db()
        next(session)
        with caplog.at_level(logging.ERROR, logger="circuito.database.database"):
            with pytest.raises(HTTPException):
                session.throw(HTTPException(status_code=404, detail="Cotización no encontrada"))
        assert "Database error" not in caplog.text

    def test_error_inesperado_se_loguea(self, caplog):
        session = get_db()
        next(session)
        with caplog.at_level(logging.ERROR, logger="circuito.database.database"):
            with pytest.raises(RuntimeError):
                session.throw(RuntimeError("conexión perdida"))
        assert "Database error: conexión perdida" in caplog.text
