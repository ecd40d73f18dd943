"""Response DTOs produced by the aggregation engine."""
from datetime import datetime
from pydantic import BaseModel
from typing import List, Optional

from lms.schemas.kelas_schema import KelasRef, PersonRef, GuruPengajar
from lms.schemas.materi_schema import MateriRef
from lms.schemas.tugas_schema import TugasRef

# --- Siswa -----------------------------------------------------------------

class SiswaDashboardStats(BaseModel):
    total_materi: int = 0
    materi_dipelajari: int = 0
    progress_materi: int = 0
    total_tugas: int = 0
    tugas_dikerjakan: int = 0
    tugas_selesai: int = 0
    tugas_pending: int = 0
    rata_nilai: int = 0
    overall_progress: int = 0
    kelas: List[str] = []

class KelasProgress(BaseModel):
    id: int
    nama: str
    total_materi: int
    materi_dipelajari: int
    total_tugas: int
    tugas_dikerjakan: int
    progress_materi: int
    progress_tugas: int

class SiswaProgressDetail(BaseModel):
    total_materi: int = 0
    materi_dipelajari: int = 0
    total_tugas: int = 0
    tugas_dikerjakan: int = 0
    rata_nilai: int = 0
    progress_materi: int = 0
    progress_tugas: int = 0
    overall_progress: int = 0
    detail_kelas: List[KelasProgress] = []

# --- Shared progress views -------------------------------------------------

class ProgressSummary(BaseModel):
    materi_selesai: int = 0
    total_materi: int = 0
    tugas_dikerjakan: int = 0
    tugas_selesai: int = 0
    total_tugas: int = 0
    rata_nilai: int = 0
    progress_materi: int = 0
    progress_tugas: int = 0
    overall_progress: int = 0

class TugasProgressItem(BaseModel):
    id: int
    judul: str
    deskripsi: Optional[str] = None
    materi: str
    kelas: str = ""
    deadline: datetime
    status: str
    nilai: Optional[int] = None
    feedback: Optional[str] = None
    jawaban: Optional[str] = None
    submitted_at: Optional[datetime] = None
    graded_at: Optional[datetime] = None

class SiswaKelasProgress(BaseModel):
    siswa: PersonRef
    kelas: KelasRef
    progress: ProgressSummary
    detail_tugas: List[TugasProgressItem]

# --- Kepsek ----------------------------------------------------------------

class KelasStatistik(BaseModel):
    total_siswa: int = 0
    siswa_aktif: int = 0
    total_materi: int = 0
    total_tugas: int = 0
    avg_nilai: int = 0

class KelasDetail(BaseModel):
    kelas: KelasRef
    siswa: List[PersonRef]
    guru: List[GuruPengajar]
    materi: List[MateriRef]
    tugas: List[TugasRef]
    statistik: KelasStatistik

class SiswaPerKelasEntry(BaseModel):
    id: int
    nama: str
    email: str
    status: str
    last_login: Optional[datetime] = None
    progress_summary: Optional[ProgressSummary] = None

class SiswaPerKelasStatistik(BaseModel):
    total_siswa: int = 0
    siswa_aktif: int = 0
    avg_progress: int = 0

class SiswaPerKelasGroup(BaseModel):
    kelas: KelasRef
    guru_pengajar: List[GuruPengajar]
    siswa_list: List[SiswaPerKelasEntry]
    statistik: SiswaPerKelasStatistik

class SchoolStatistics(BaseModel):
    jumlah_guru: int = 0
    jumlah_siswa: int = 0
    jumlah_kelas: int = 0
    jumlah_materi: int = 0
    jumlah_tugas: int = 0
    guru_aktif: int = 0
    siswa_aktif: int = 0

class ActivityItem(BaseModel):
    type: str
    title: str
    description: str
    created_at: Optional[datetime]

class ActivityCounts(BaseModel):
    materials_created: int = 0
    assignments_created: int = 0
    submissions_received: int = 0
    grades_given: int = 0

class LearningActivity(BaseModel):
    recent_activities: List[ActivityItem] = []
    active_students_today: int = 0
    summary: ActivityCounts = ActivityCounts()

# --- Guru ------------------------------------------------------------------

class GuruInfo(BaseModel):
    nama: str
    email: str
    bidang: str
    kelas_mengajar: str
    is_wali_kelas: bool
    wali_kelas_nama: Optional[str] = None
    last_login: Optional[datetime] = None
    login_count: int = 0

class GuruDashboardStats(BaseModel):
    total_materi: int = 0
    total_tugas: int = 0
    tugas_pending: int = 0
    rata_nilai: int = 0
    total_siswa: int = 0
    total_kelas: int = 0
    guru_info: GuruInfo

class GuruKelasInfo(BaseModel):
    id: int
    nama: str
    tingkat: str
    mata_pelajaran: str
    jumlah_siswa: int
    jumlah_materi: int
    jumlah_tugas: int
    is_wali_kelas: bool

class GuruSiswaProgress(BaseModel):
    id: int
    nama: str
    email: str
    kelas: str
    progress: int
    rata_nilai: int
    tugas_dikerjakan: int
    tugas_selesai: int
    total_tugas: int
    last_activity: Optional[datetime] = None

class GuruSiswaStatistik(BaseModel):
    total_tugas: int = 0
    tugas_dikerjakan: int = 0
    tugas_dinilai: int = 0
    progress: int = 0
    rata_rata_nilai: int = 0

class GuruSiswaDetail(BaseModel):
    siswa: PersonRef
    statistik: GuruSiswaStatistik
    detail_tugas: List[TugasProgressItem]

class GuruKelasStatistik(BaseModel):
    total_siswa: int = 0
    avg_progress: int = 0
    avg_grade: int = 0

class GuruKelasGroup(BaseModel):
    kelas: KelasRef
    siswa: List[GuruSiswaProgress]
    statistik: GuruKelasStatistik

class WaliAttendance(BaseModel):
    total_siswa: int = 0
    active_week: int = 0
    active_today: int = 0

class WaliGrades(BaseModel):
    rata_nilai_kelas: int = 0
    total_tugas_dinilai: int = 0
    siswa_nilai_baik: int = 0

class WaliActivity(BaseModel):
    submissions_week: int = 0
    materials_accessed_week: int = 0

class WaliKelasStats(BaseModel):
    is_wali_kelas: bool
    kelas_info: Optional[KelasRef] = None
    attendance: Optional[WaliAttendance] = None
    grades: Optional[WaliGrades] = None
    activity: Optional[WaliActivity] = None

class UpcomingDeadline(BaseModel):
    id: int
    judul: str
    deadline: datetime
    materi_judul: str
    kelas: str
    total_submissions: int
    pending_grading: int
