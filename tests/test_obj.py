"""Tests for polygon soup I/O."""

import numpy as np
import pytest

import manifix.obj as obj
from manifix.hds import Mesh


SOUP = """\
# two triangles and a dangling segment
v 0 0 0
v 1 0 0
v 0 1 0
vn 0 0 1
v 1 1 0

f 1 2 3
f -3/1 -1/2/3 -2//4
f 1 2
"""


@pytest.fixture
def soup_file(tmp_path):
    path = tmp_path / 'soup.obj'
    path.write_text(SOUP)

    return path


def test_read_keeps_degenerate_faces(soup_file):
    points, faces = obj.read(soup_file)

    assert points.shape == (4, 3)
    np.testing.assert_array_equal(points[3], [1.0, 1.0, 0.0])
    assert faces == [[0, 1, 2], [1, 3, 2], [0, 1]]


def test_read_rejects_malformed_reference(tmp_path):
    path = tmp_path / 'bad.obj'
    path.write_text('v 0 0 0\nv 1 0 0\nv 0 1 0\nf 1/ 2 3\n')

    with pytest.raises(ValueError):
        obj.read(path)


def test_read_empty_file(tmp_path):
    path = tmp_path / 'empty.obj'
    path.write_text('')

    assert obj.read(path) == (None, [])


def test_mesh_read_repairs_soup(soup_file):
    mesh = Mesh.read(soup_file)

    assert mesh.name == 'soup'
    assert mesh.size == (4, 5, 2)
    assert [[int(v) for v in f] for f in mesh] == [[0, 1, 2], [1, 3, 2]]


def test_mesh_read_prints_summary(soup_file, capsys):
    Mesh.read(soup_file, quiet=False)
    out = capsys.readouterr().out

    assert 'soup.obj' in out
    assert '4 vertices' in out
    assert '3 faces' in out
    assert '1 faces with less than 3 vertices (ignored)' in out


def test_mesh_read_strict(soup_file):
    with pytest.raises(ValueError):
        Mesh.read(soup_file, repair=False)


def test_write_and_read_back(tmp_path):
    points = [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0],
              [0.0, 0.0, 1.0]]
    faces = [[0, 2, 1], [0, 1, 3], [0, 3, 2], [1, 2, 3]]
    path = tmp_path / 'tetra.obj'

    Mesh(points, faces).write(path)
    read_points, read_faces = obj.read(path)

    np.testing.assert_array_equal(read_points, points)
    assert read_faces == faces
