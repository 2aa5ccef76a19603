# Copyright 2024, m3shware
#
# Permission is hereby granted, free of charge, to any person obtaining a
# copy of this software and associated documentation files (the "Software"),
# to deal in the Software without restriction, including without limitation
# the rights to use, copy, modify, merge, publish, distribute, sublicense,
# and/or sell copies of the Software, and to permit persons to whom the
# Software is furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in
# all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING
# FROM, OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS
# IN THE SOFTWARE.

""" Polygon soup I/O.

Low-level functions to read and write the vertex and face statements of
OBJ files. Face definitions are returned exactly as found in the file:
faces with less than three vertices or repeated vertices are **not**
filtered here, that is the job of :class:`~manifix.guard.ManifoldGuard`.
"""

import numpy as np


def _array_append(array, item):
    """ Resize and append to array.

    Parameters
    ----------
    array : ~numpy.ndarray or None
        Array object to be augmented. A new array of shape
        ``(1, *item.shape)`` will be created if :obj:`None`.
    item : array_like
        Item to be added as new element of the first axis. The
        shapes ``array.shape[1:]`` and ``item.shape`` have to agree.

    Raises
    ------
    ValueError
        In case of dimension mismatch.

    Returns
    -------
    ~numpy.ndarray
        Reference to the enlarged array. This is a new array if the
        input array argument was :obj:`None`.

    Note
    ----
    Growing the array in place may move its data buffer. Views of rows
    taken before the call must not be used as `item`.
    """
    if isinstance(array, np.ndarray):
        if array[-1].shape != np.shape(item):
            msg = f'cannot add item with shape {np.shape(item)}'
            raise ValueError(msg)

        arr_shape = list(array.shape)
        arr_shape[0] += 1

        array.resize(arr_shape, refcheck=False)
    else:
        array = np.empty((1, *np.shape(item)))

    array[-1, ...] = item

    return array


def _parse(block):
    """ Parse vertex reference of a face statement.

    Parameters
    ----------
    block : str
        One of the forms ``v``, ``v/vt``, ``v/vt/vn`` or ``v//vn``.

    Raises
    ------
    ValueError
        If the string could not be parsed.

    Returns
    -------
    int
        The vertex index as written in the file (1-based or negative).
    """
    bits = block.split('/')

    # Texture and normal references are validated but dropped, only the
    # combinatorics matter here.
    if len(bits) > 3 or (len(bits) == 2 and not bits[1]):
        raise ValueError('invalid vertex reference: ' + block)

    for bit in bits[1:]:
        if bit:
            int(bit)

    return int(bits[0])


def read(filename):
    """ Read polygon soup.

    Parameters
    ----------
    filename : str or ~pathlib.Path
        Name of an OBJ file.

    Raises
    ------
    ValueError
        If a vertex or face statement could not be parsed.

    Returns
    -------
    points : ~numpy.ndarray or None
        Vertex coordinates along the first axis, :obj:`None` if the
        file holds no vertices.
    faces : list[list[int]]
        Face definitions, 0-based vertex indexing.


    Negative (relative) vertex references are resolved against the
    number of vertices read up to the face statement:

    >>> points, faces = read('input-file.obj')
    """
    points = None
    faces = []

    # The number of encountered vertex statements. Needed to resolve
    # negative (relative) vertex indices.
    vcnt = 0

    with open(filename, 'r') as file:
        for line in file:
            blocks = line.split()

            if not blocks:
                continue

            if blocks[0] == 'v':
                vcnt += 1
                points = _array_append(points,
                                       [float(b) for b in blocks[1:]])
            elif blocks[0] == 'f':
                face = [_parse(block) for block in blocks[1:]]
                faces.append([vcnt + i if i < 0 else i - 1 for i in face])

    return points, faces


def write(filename, points, faces):
    """ Write polygon soup.

    Parameters
    ----------
    filename : str or ~pathlib.Path
        Name of output file.
    points : array_like or None
        Vertex coordinates, one vertex per row.
    faces : iterable
        Face definitions. Entries are anything :func:`int` accepts, in
        particular :class:`~manifix.hds.Vertex` instances.
    """
    with open(filename, 'w') as file:
        if points is not None:
            for row in points:
                file.write('v')

                for element in row:
                    file.write(f' {element}')

                file.write('\n')

        for face in faces:
            file.write('f')

            for vertex in face:
                file.write(f' {int(vertex) + 1}')

            file.write('\n')
