"""Mandatory pre-interview questions (Bahasa Indonesia).

Edit this list to customize the questions asked during pre-interview calls.
`{job_title}` is replaced with the position title when the call knows it.
"""

MANDATORY_QUESTIONS = [
    "Bisakah Anda ceritakan pengalaman Anda yang paling relevan untuk peran ini, khususnya menyoroti "
    "proyek atau pencapaian di mana Anda secara langsung menangani {job_title} atau tanggung jawab serupa?",
    "Berikut ini pertanyaan verifikasi yang wajib Anda jawab. Silahkan ketik jawaban Anda melalui menu "
    "Notes dari tombol di kanan bawah. Apa nama tayangan favorit kamu waktu kecil?",
    "Apa yang secara spesifik menarik Anda pada peran ini di perusahaan kami, dan apa yang Anda harapkan "
    "dapat Anda capai dalam 90 hari pertama Anda di sini?",
    "Ceritakan tentang saat Anda menghadapi tantangan atau kemunduran yang signifikan dalam lingkungan "
    "profesional. Bagaimana Anda menghadapinya, apa hasilnya, dan pelajaran apa yang Anda ambil dari "
    "pengalaman tersebut?",
    "Bagaimana Anda biasanya memilih untuk berkolaborasi dengan anggota tim, terutama saat mengerjakan "
    "proyek yang kompleks dengan perbedaan pendapat? Bisakah Anda berikan contohnya?",
    "Selain persyaratan teknis, menurut Anda, keterampilan lunak (soft skill) apa yang paling penting "
    "untuk keberhasilan dalam peran khusus ini, dan bagaimana Anda telah mengembangkan atau menunjukkan "
    "keterampilan tersebut?",
]

# Used when the call has no job title attached
DEFAULT_JOB_TITLE = "posisi ini"


def render_questions(job_title: str | None = None) -> list[str]:
    """Fill the job-title placeholder for one call."""
    title = (job_title or "").strip() or DEFAULT_JOB_TITLE
    return [q.replace("{job_title}", title) for q in MANDATORY_QUESTIONS]
