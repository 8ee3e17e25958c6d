import pytest

from finanzaviz.models import Client


@pytest.fixture
def client():
    return Client(
        id="c1",
        razaoSocial="Tecnologia Inovadora LTDA",
        nomeFantasia="Tech Inovadora",
        cnpj="12.345.678/0001-90",
        cnae="6201-5/01",
    )
