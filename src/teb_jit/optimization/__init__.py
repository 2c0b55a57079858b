# Copyright (c) 2025.
# This file is part of TEB-JIT, released under the MIT License.
