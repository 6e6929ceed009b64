import math

import pytest

from src.core.errors import ExpressionMatrixError
from src.services.expression import parse_expression_matrix

CSV = "Gene,S1,S2,Label\nTP53,1.5,2,x\n,9,9,y\nBRCA1,NA,4,z\n"


def test_rows_without_gene_are_dropped():
    m = parse_expression_matrix(CSV)
    assert m.genes == ["TP53", "BRCA1"]
    assert m.samples == ["S1", "S2"]
    assert m.shape == (2, 2)


def test_heatmap_uses_none_for_missing():
    m = parse_expression_matrix(CSV)
    assert m.heatmap() == [[1.5, 2.0], [None, 4.0]]


def test_sample_values_indexed_by_gene():
    s = parse_expression_matrix(CSV).sample_values("S2")
    assert s.to_dict() == {"TP53": 2.0, "BRCA1": 4.0}
    with pytest.raises(ExpressionMatrixError):
        parse_expression_matrix(CSV).sample_values("Label")


def test_resolve_sample_falls_back_to_first():
    m = parse_expression_matrix(CSV)
    assert m.resolve_sample("S2") == "S2"
    assert m.resolve_sample("missing") == "S1"
    assert m.resolve_sample(None) == "S1"


def test_records_limit():
    body = "Gene,S\n" + "".join(f"g{i},{i}\n" for i in range(250))
    recs = parse_expression_matrix(body).records(200)
    assert len(recs) == 200
    assert recs[3] == {"Gene": "g3", "S": 3.0}
    assert math.isclose(recs[-1]["S"], 199.0)


@pytest.mark.parametrize(
    "body, message",
    [
        ("Name,S1\nA,1\n", "Missing required 'Gene' column."),
        ("Gene,S1\n ,1\n", "No valid rows found. Ensure first column is 'Gene'."),
        ("Gene,Label\nA,x\n", "No numeric sample columns detected."),
    ],
)
def test_invalid_matrices(body, message):
    with pytest.raises(ExpressionMatrixError, match=message.replace(".", r"\.")):
        parse_expression_matrix(body)
