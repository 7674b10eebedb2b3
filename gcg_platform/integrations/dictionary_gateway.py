"""
Master dictionary (template hierarchy) source.

``get_hierarchy`` returns the master KKA → Aspect → Parameter → Factor tree
in the same nested shape the hierarchy builder accepts:

    [{"kode": "KKA001", "nama": "...", "weight": 1.0,
      "aspects": [{"kode": "ASP001", ...,
                   "parameters": [{"kode": "PAR001", ...,
                                   "factors": [{"kode": "FAK001", "max_score": 1}]}]}]}]

Assessments copy the template at creation time; later edits to the master
never touch existing assessments.
"""

from __future__ import annotations

import copy

# Baseline template used by ``flask seed-template-assessment`` and local
# development when no dictionary service is wired in.
DEFAULT_TEMPLATE: list[dict] = [
    {
        "kode": "KKA001", "nama": "Komitmen",
        "deskripsi": "Komitmen terhadap tata kelola perusahaan yang baik", "weight": 1.0,
        "aspects": [
            {
                "kode": "ASP001", "nama": "Komitmen Manajemen", "weight": 1.0, "sort": 1,
                "parameters": [
                    {
                        "kode": "PAR001", "nama": "Kebijakan GCG", "weight": 1.0, "sort": 1,
                        "factors": [
                            {"kode": "FAK001", "nama": "Dokumen Kebijakan", "max_score": 1, "sort": 1,
                             "deskripsi": "Kebijakan GCG terdokumentasi dengan baik"},
                            {"kode": "FAK002", "nama": "Sosialisasi Kebijakan", "max_score": 1, "sort": 2,
                             "deskripsi": "Kebijakan disosialisasikan ke seluruh karyawan"},
                        ],
                    },
                    {
                        "kode": "PAR002", "nama": "Implementasi Kebijakan", "weight": 1.0, "sort": 2,
                        "factors": [
                            {"kode": "FAK003", "nama": "Monitoring Implementasi", "max_score": 1, "sort": 1,
                             "deskripsi": "Implementasi kebijakan dimonitor secara berkala"},
                            {"kode": "FAK004", "nama": "Evaluasi Hasil", "max_score": 1, "sort": 2,
                             "deskripsi": "Hasil implementasi dievaluasi dan ditindaklanjuti"},
                        ],
                    },
                ],
            },
            {
                "kode": "ASP002", "nama": "Budaya Perusahaan", "weight": 1.0, "sort": 2,
                "parameters": [
                    {
                        "kode": "PAR003", "nama": "Nilai Perusahaan", "weight": 1.0, "sort": 1,
                        "factors": [
                            {"kode": "FAK005", "nama": "Internalisasi Nilai", "max_score": 1, "sort": 1},
                        ],
                    },
                    {
                        "kode": "PAR004", "nama": "Komunikasi", "weight": 1.0, "sort": 2,
                        "factors": [
                            {"kode": "FAK006", "nama": "Saluran Komunikasi", "max_score": 1, "sort": 1},
                        ],
                    },
                ],
            },
        ],
    },
    {
        "kode": "KKA002", "nama": "Peran",
        "deskripsi": "Peran dan tanggung jawab dalam tata kelola", "weight": 1.0,
        "aspects": [
            {
                "kode": "ASP003", "nama": "Struktur Organisasi", "weight": 1.0, "sort": 1,
                "parameters": [
                    {
                        "kode": "PAR005", "nama": "Pembagian Tugas", "weight": 1.0, "sort": 1,
                        "factors": [
                            {"kode": "FAK007", "nama": "Uraian Jabatan", "max_score": 1, "sort": 1},
                        ],
                    },
                ],
            },
        ],
    },
    {
        "kode": "KKA003", "nama": "Kinerja",
        "deskripsi": "Kinerja dan pencapaian target", "weight": 1.0,
        "aspects": [
            {
                "kode": "ASP005", "nama": "Indikator Kinerja", "weight": 1.0, "sort": 1,
                "parameters": [
                    {
                        "kode": "PAR006", "nama": "Target Kinerja", "weight": 1.0, "sort": 1,
                        "factors": [
                            {"kode": "FAK008", "nama": "Penetapan KPI", "max_score": 1, "sort": 1},
                        ],
                    },
                ],
            },
        ],
    },
]


class DictionaryGateway:
    """Interface for the master dictionary."""

    def get_hierarchy(self) -> list[dict]:
        raise NotImplementedError


class StaticDictionaryGateway(DictionaryGateway):
    """Serves a fixed template. Callers always receive a deep copy."""

    def __init__(self, template: list[dict] | None = None) -> None:
        self._template = DEFAULT_TEMPLATE if template is None else template

    def get_hierarchy(self) -> list[dict]:
        return copy.deepcopy(self._template)
